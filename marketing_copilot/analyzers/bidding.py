"""Segment-vs-average bid adjustment heuristic shared by audience and LTV analysis."""

MIN_SEGMENT_SAMPLE = 10

# (minimum ratio, adjustment %) checked top-down
BID_ADJUSTMENT_BREAKPOINTS = (
    (1.5, 50),
    (1.3, 30),
    (1.1, 15),
    (0.9, 0),
    (0.7, -15),
    (0.5, -30),
)
FLOOR_ADJUSTMENT = -50


def calculate_bid_adjustment(segment_value: float, average_value: float) -> int:
    """Map segment/average ratio to a bounded bid adjustment in percent."""
    if average_value == 0:
        return 0
    ratio = segment_value / average_value
    for minimum, adjustment in BID_ADJUSTMENT_BREAKPOINTS:
        if ratio >= minimum:
            return adjustment
    return FLOOR_ADJUSTMENT


def format_adjustment(adjustment: int) -> str:
    return f"+{adjustment}%" if adjustment > 0 else f"{adjustment}%"
