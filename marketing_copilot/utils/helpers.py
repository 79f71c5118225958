"""
Helper utilities
"""
from typing import Optional
import math
import re


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def calculate_percentage_change(current: float, previous: float) -> Optional[float]:
    """Calculate percentage change between two values"""
    if previous == 0:
        return None
    return ((current - previous) / previous) * 100


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_to_increment(value: float, increment: float) -> float:
    """Round to the nearest currency increment (e.g. 0.05 or 5)."""
    return round(math.floor(value / increment + 0.5) * increment, 2)


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    text = re.sub(r"[^\w\s]", "", (text or "").lower().strip())
    return re.sub(r"\s+", " ", text).strip()
