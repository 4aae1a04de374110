from datetime import datetime, timedelta, timezone
from finbot.config import DB_TIMEZONE_OFFSET

def parse_offset(offset: str) -> timezone:
    """
    Turns an SQLite-style modifier such as '-3 hours' or '+30 minutes'
    into a fixed-offset timezone. Anything unparsable is UTC.
    """
    try:
        value, unit = offset.split()
        if 'hour' in unit:
            return timezone(timedelta(hours=int(value)))
        if 'minute' in unit:
            return timezone(timedelta(minutes=int(value)))
    except ValueError:
        pass
    return timezone.utc

def get_now_in_configured_timezone() -> datetime:
    return datetime.now(parse_offset(DB_TIMEZONE_OFFSET))
