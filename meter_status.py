from enum import Enum

from intensity_mapper import clamp_intensity

SEGMENT_COUNT = 20


class MeterStatus(Enum):
    SAFE = 'SAFE'
    WARNING = 'WARNING'
    DANGER = 'DANGER'
    CRITICAL = 'CRITICAL'


def meter_status(level: float) -> MeterStatus:
    """Status band for a meter level (same cut points as the face indicator)."""
    value = clamp_intensity(level)
    if value < 40:
        return MeterStatus.SAFE
    if value < 70:
        return MeterStatus.WARNING
    if value < 85:
        return MeterStatus.DANGER
    return MeterStatus.CRITICAL


def active_segments(level: float, total: int = SEGMENT_COUNT) -> int:
    """Number of lit bar segments; segment i lights once level exceeds i/total of full scale."""
    value = clamp_intensity(level)
    return sum(1 for i in range(total) if value > i / total * 100.0)


def segment_color(index: int) -> str:
    if index > 16:
        return 'red'
    if index > 12:
        return 'yellow'
    return 'green'
