WIZARD_CONFIG = {
    'title': "➕ New Movement",
    'steps': {
        'wallet': {
            'instruction': "Select the wallet this movement belongs to.",
            'buttons': 'generate_wallet_step_buttons',
        },
        'payment_method': {
            'instruction': "How will it be paid? Use a manual PIX key or charge through Mercado Pago.",
            'buttons': 'generate_payment_method_step_buttons',
        },
        'movement_type': {
            'instruction': "Choose the kind of movement.",
            'buttons': 'generate_movement_type_step_buttons',
        },
        'parties': {
            'instruction': "Who owes whom? Tap a field to fill it in.",
            'buttons': 'generate_parties_step_buttons',
        },
        'amounts': {
            'instruction': "Fill in the amounts and dates. Tap a field to change it.",
            'buttons': 'generate_amounts_step_buttons',
        },
        'confirmation': {
            'instruction': "Everything look correct? You can still go back and edit.",
            'buttons': None,
        },
    }
}

# Prompts for the fields that are typed in as a chat message
FIELD_PROMPTS = {
    'description': "Send a short description (e.g. \"Rent March\").",
    'debtor_email': "Send the debtor's email.",
    'debtor_name': "Send the debtor's name.",
    'creditor_email': "Send the creditor's email.",
    'creditor_name': "Send the creditor's name.",
    'total_amount': "Send the total amount (e.g. 1500 or 1.500,00).",
    'installment_amount': "Send the amount of each installment.",
    'installments': "Send the number of installments.",
    'total_installments': "Send the total number of installments of the original plan.",
    'paid_installments': "How many installments were already paid?",
    'due_date': "Send the due date as YYYY-MM-DD.",
    'day_of_month': "Send the day of the month to charge (1-31).",
    'subscription_name': "Send a name for the subscription.",
    'duration_months': "For how many months? Tap ♾️ No end for a charge that never ends.",
    'pix_key_value': "Send the value of the new PIX key.",
}

MOVEMENT_TYPE_LABELS = {
    'single': "💵 Single",
    'installment': "🧾 Installments",
    'recurring': "🔁 Recurring",
}

GATEWAY_PAYMENT_TYPE_LABELS = {
    'INSTALLMENT': "🧾 Installments",
    'SINGLE_PIX': "⚡ Single PIX",
    'RECURRING_CARD': "💳 Recurring card",
}

RELATIONSHIP_LABELS = {
    'other-owes-me': "🫵 Someone owes me",
    'i-owe-other': "🙋 I owe someone",
    'i-owe-myself': "🪞 Personal bill",
}

INTERVAL_LABELS = {
    'MONTHLY': "Monthly",
    'BIWEEKLY': "Biweekly",
    'WEEKLY': "Weekly",
}

CONNECTION_LABELS = {
    'unknown': "❔ Not checked",
    'checking': "⏳ Checking...",
    'connected': "✅ Connected",
    'disconnected': "⚠️ Not connected",
}
