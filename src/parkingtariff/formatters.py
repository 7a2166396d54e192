from typing import Optional

DAYS_OF_WEEK = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]


def format_price(cents: Optional[int], symbol: str = "R$") -> str:
    """Format cents as Brazilian currency, e.g. 123456 -> 'R$ 1.234,56'"""
    if cents is None:
        return "Price not available"
    sign = "-" if cents < 0 else ""
    reais, centavos = divmod(abs(cents), 100)
    # 1,234 -> 1.234
    whole = f"{reais:,}".replace(",", ".")
    return f"{sign}{symbol} {whole},{centavos:02d}"


def format_hour(hour: int, is_end_hour: bool = False) -> str:
    # An end hour covers the whole hour
    if is_end_hour:
        return f"{hour:02d}:59"
    return f"{hour:02d}:00"


def format_hour_range(start_hour: int, end_hour: int) -> str:
    return f"{format_hour(start_hour)} - {format_hour(end_hour, is_end_hour=True)}"


def day_label(week_day: int) -> str:
    if 0 <= week_day < len(DAYS_OF_WEEK):
        return DAYS_OF_WEEK[week_day]
    return f"Day {week_day}"
