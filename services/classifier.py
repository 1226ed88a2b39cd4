"""Status classification and health scoring for a single sensor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional

from models.records import Reading, SensorStatus, StatusResult, ThresholdSet

HEALTH_SCORES: Dict[SensorStatus, int] = {
    SensorStatus.normal: 100,
    SensorStatus.warning: 60,
    SensorStatus.critical: 20,
    SensorStatus.offline: 0,
}


@dataclass(frozen=True)
class StatusMessages:
    """Localized message table; templates may use ``{value}`` and ``{bound}``."""

    offline: str = "No recent data"
    optimal: str = "Within optimal range"
    below_min: str = "Below minimum ({value} <= {bound})"
    above_max: str = "Above maximum ({value} >= {bound})"
    below_optimal: str = "Below optimal range ({value} < {bound})"
    above_optimal: str = "Above optimal range ({value} > {bound})"


DEFAULT_MESSAGES = StatusMessages()


def health_score(status: SensorStatus) -> int:
    return HEALTH_SCORES[status]


def classify(
    value: Optional[float],
    thresholds: ThresholdSet,
    last_reading_age: Optional[timedelta],
    staleness_window: Optional[timedelta] = None,
    messages: StatusMessages = DEFAULT_MESSAGES,
    last_reading: Optional[Reading] = None,
) -> StatusResult:
    """Classify one value against its thresholds.

    ``last_reading_age`` is ``None`` when the sensor never reported. With a
    ``staleness_window`` set, a reading older than the window also counts as
    offline, whatever its value. Both outer bounds are critical when hit
    exactly; both optimal bounds are normal when hit exactly.
    """
    stale = (
        staleness_window is not None
        and last_reading_age is not None
        and last_reading_age > staleness_window
    )
    if value is None or last_reading_age is None or stale:
        return StatusResult(
            status=SensorStatus.offline,
            value=value,
            last_reading=last_reading,
            message=messages.offline,
        )

    if value <= thresholds.min:
        status, template, bound = SensorStatus.critical, messages.below_min, thresholds.min
    elif value >= thresholds.max:
        status, template, bound = SensorStatus.critical, messages.above_max, thresholds.max
    elif value < thresholds.optimal_min:
        status, template, bound = (
            SensorStatus.warning,
            messages.below_optimal,
            thresholds.optimal_min,
        )
    elif value > thresholds.optimal_max:
        status, template, bound = (
            SensorStatus.warning,
            messages.above_optimal,
            thresholds.optimal_max,
        )
    else:
        status, template, bound = SensorStatus.normal, messages.optimal, None

    return StatusResult(
        status=status,
        value=value,
        last_reading=last_reading,
        message=template.format(value=value, bound=bound),
    )


def breached_bound(value: float, status: SensorStatus, thresholds: ThresholdSet) -> Optional[float]:
    """Threshold that put ``value`` into ``status``; ``None`` for normal/offline."""
    if status is SensorStatus.critical:
        return thresholds.min if value <= thresholds.min else thresholds.max
    if status is SensorStatus.warning:
        return thresholds.optimal_min if value < thresholds.optimal_min else thresholds.optimal_max
    return None
