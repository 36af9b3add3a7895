# backend/virtual_line/services/slots/calculator.py
"""
Schedule generation: turns day parameters into slot times.

Pure functions, no I/O. Everything here is deterministic given its inputs.

Produces:
✓ interval between slots (site floor, requested or derived from target)
✓ regular slot times for a publish
✓ dense time runs for appending to an existing day
✓ which generated slots start out disabled
✓ work-in slot times

Does NOT know about:
✗ holds or reservations (Slot Store / Hold Manager)
✗ which rows already exist for the day
"""

import math
from dataclasses import dataclass

from ...exceptions import ValidationError
from .config import minutes_to_time_str, time_str_to_minutes


@dataclass(frozen=True)
class GeneratedSlot:
    time: str  # "HH:MM"
    disabled: bool = False


@dataclass(frozen=True)
class GeneratedSchedule:
    interval: int
    slots: list[GeneratedSlot]

    @property
    def disabled_count(self) -> int:
        return sum(1 for s in self.slots if s.disabled)


def compute_interval(
    open_min: int,
    close_min: int,
    loads_target: int,
    min_interval: int,
    requested_interval: int | None = None,
) -> int:
    """
    Minutes between consecutive slots.

    interval = max(min_interval, requested_interval if > 0
                   else floor((close - open) / max(1, loads_target - 1)))
    """
    if requested_interval and requested_interval > 0:
        wanted = requested_interval
    else:
        wanted = (close_min - open_min) // max(1, loads_target - 1)
    return max(min_interval, wanted)


def generate_times(
    open_time: str,
    close_time: str,
    loads_target: int,
    min_interval: int,
    requested_interval: int | None = None,
) -> tuple[int, list[str]]:
    """
    Generate up to loads_target slot times starting at open_time.

    Times past close_time are dropped, so fewer than loads_target
    slots may come back. That is accepted, not an error.

    Returns:
        (interval, ["HH:MM", ...])
    """
    open_min, close_min = _validate_window(open_time, close_time)
    if loads_target < 1:
        raise ValidationError(f"loads_target must be >= 1, got {loads_target}")
    if requested_interval is not None and requested_interval < 0:
        raise ValidationError(f"interval must be >= 0, got {requested_interval}")

    interval = compute_interval(
        open_min, close_min, loads_target, min_interval, requested_interval
    )

    times = []
    for i in range(loads_target):
        t = open_min + i * interval
        if t > close_min:
            break
        times.append(minutes_to_time_str(t))

    return interval, times


def generate_dense_times(start_time: str, end_time: str, step: int) -> list[str]:
    """
    Every step minutes across [start_time, end_time], both ends inclusive.

    Used to widen a day without touching rows that already exist.
    """
    start_min, end_min = _validate_window(start_time, end_time)
    if step < 1:
        raise ValidationError(f"step must be >= 1, got {step}")

    return [minutes_to_time_str(t) for t in range(start_min, end_min + 1, step)]


def pick_disabled_indices(count: int, disabled_count: int) -> set[int]:
    """
    Spread disabled_count disabled slots as evenly as possible over count slots.

    stride = round(count / disabled_count); indices stride-1, 2*stride-1, ...
    If the stride walk comes up short, back-fill from the end.
    """
    if disabled_count <= 0 or count <= 0:
        return set()
    if disabled_count >= count:
        return set(range(count))

    # Round half up
    stride = max(1, math.floor(count / disabled_count + 0.5))
    picked = list(range(stride - 1, count, stride))[:disabled_count]

    chosen = set(picked)
    idx = count - 1
    while len(chosen) < disabled_count and idx >= 0:
        chosen.add(idx)
        idx -= 1

    return chosen


def generate_schedule(
    open_time: str,
    close_time: str,
    loads_target: int,
    min_interval: int,
    requested_interval: int | None = None,
    disabled_count: int = 0,
) -> GeneratedSchedule:
    """Regular slots for a day, with the disabling policy applied."""
    if disabled_count < 0:
        raise ValidationError(f"disabled_count must be >= 0, got {disabled_count}")

    interval, times = generate_times(
        open_time, close_time, loads_target, min_interval, requested_interval
    )
    disabled = pick_disabled_indices(len(times), disabled_count)

    return GeneratedSchedule(
        interval=interval,
        slots=[GeneratedSlot(time=t, disabled=i in disabled) for i, t in enumerate(times)],
    )


def generate_workin_times(
    open_time: str,
    close_time: str,
    workins_per_hour: int,
    min_interval: int,
) -> list[str]:
    """Work-in slot times: workins_per_hour across the day, never denser than the site floor."""
    if workins_per_hour < 0:
        raise ValidationError(f"workins_per_hour must be >= 0, got {workins_per_hour}")
    if workins_per_hour == 0:
        return []

    step = max(min_interval, 60 // workins_per_hour, 1)
    return generate_dense_times(open_time, close_time, step)


# ── Helpers ──────────────────────────────────────────────────────────────


def _validate_window(start_time: str, end_time: str) -> tuple[int, int]:
    start_min = time_str_to_minutes(start_time)
    end_min = time_str_to_minutes(end_time)
    if end_min <= start_min:
        raise ValidationError(
            f"Close time {end_time} must be after open time {start_time}"
        )
    return start_min, end_min
