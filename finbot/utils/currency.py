from finbot.config import CURRENCY

def format_amount(amount: float | None) -> str:
    # Cents precision, thousands separated by commas
    if amount is None:
        return "—"
    formatted_number = f"{amount:,.2f}"
    return f"{formatted_number} {CURRENCY}"
