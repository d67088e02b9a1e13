def format_money(amount: float, currency: str = "TZS") -> str:
    """Format as '<CUR> 1,234.56' with a leading minus for negatives."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{currency} {abs(amount):,.2f}"


def format_number(value: float) -> str:
    """Grouped number with up to three decimals and no trailing zeros, e.g. 1,500 or 12.5."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_percent(value: float | None, digits: int = 0) -> str:
    if value is None:
        return "n/a"
    return f"{value:+.{digits}f}%"


def plain_number(value: float) -> str:
    """Shortest plain rendering: 1500 for whole numbers, 1500.5 otherwise."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)
