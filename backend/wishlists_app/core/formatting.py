"""French display helpers used in notification and email texts."""
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

FRENCH_MONTHS = (
    "janvier",
    "février",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "août",
    "septembre",
    "octobre",
    "novembre",
    "décembre",
)

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£", "CHF": "CHF"}

# narrow no-break space groups thousands, no-break space precedes the symbol
_THOUSANDS_SEP = "\u202f"
_SYMBOL_SEP = "\xa0"


def _as_date(value: str | date | datetime) -> date:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return value.date()
    return value


def format_price(amount: float | Decimal | None, currency: str = "EUR") -> str:
    """
    >>> format_price(25.5)
    '25,50\xa0€'
    """
    quantized = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    units, cents = f"{abs(quantized):.2f}".split(".")
    groups = []
    while len(units) > 3:
        groups.insert(0, units[-3:])
        units = units[:-3]
    groups.insert(0, units)
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())
    return f"{sign}{_THOUSANDS_SEP.join(groups)},{cents}{_SYMBOL_SEP}{symbol}"


def format_date(value: str | date | datetime) -> str:
    return _as_date(value).strftime("%d/%m/%Y")


def format_long_date(value: str | date | datetime) -> str:
    d = _as_date(value)
    return f"{d.day} {FRENCH_MONTHS[d.month - 1]} {d.year}"


def format_percentage(value: float) -> str:
    rounded = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{rounded}%"


def format_relative_date(value: str | date | datetime, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=now.tzinfo)
    if value.tzinfo is None and now.tzinfo is not None:
        value = value.replace(tzinfo=now.tzinfo)
    elif value.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=value.tzinfo)
    days = (now - value).days

    if days <= 0:
        return "Aujourd'hui"
    if days == 1:
        return "Hier"
    if days < 7:
        return f"Il y a {days} jours"
    if days < 30:
        weeks = days // 7
        return f"Il y a {weeks} semaine{'s' if weeks > 1 else ''}"
    if days < 365:
        return f"Il y a {days // 30} mois"
    years = days // 365
    return f"Il y a {years} an{'s' if years > 1 else ''}"
