from datetime import date, timedelta
from typing import Literal, Optional


def last_completed_week(today: Optional[date] = None) -> tuple[date, date]:
    """Monday..Sunday of the most recent week that has fully ended."""
    today = today or date.today()
    this_monday = today - timedelta(days=today.weekday())
    start = this_monday - timedelta(days=7)
    return start, start + timedelta(days=6)


def previous_window(start: date) -> tuple[date, date]:
    """The 7 days immediately before ``start``."""
    end = start - timedelta(days=1)
    return end - timedelta(days=6), end


def trend_direction(change: float) -> Literal["up", "down", "stable"]:
    if change > 5:
        return "up"
    if change < -5:
        return "down"
    return "stable"


def format_change(change: float) -> str:
    prefix = "+" if change > 0 else ""
    return f"{prefix}{change:.1f}%"
