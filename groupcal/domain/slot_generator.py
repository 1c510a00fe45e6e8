"""
Candidate slot grid generation.

Pure domain logic: no I/O, no clock access. Every call returns freshly
built slots marked available with no conflicts.
"""

from typing import List

from pendulum import DateTime

from .models import CandidateSlot, Interval, WorkingHours

DEFAULT_STEP_MINUTES = 60


def _hour_on(day_start: DateTime, hour: int) -> DateTime:
    if hour >= 24:
        return day_start.add(days=1)
    return day_start.set(hour=hour, minute=0, second=0, microsecond=0)


def generate_day_slots(
    reference_date: DateTime,
    start_hour: int,
    end_hour: int,
    duration_minutes: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> List[CandidateSlot]:
    """
    Build the candidate grid for a single day.

    Slots are ``[t, t + duration)`` for ``t = start_hour:00`` advancing by
    ``step_minutes`` while ``t + step_minutes`` does not pass ``end_hour:00``.
    The step is independent of the duration, so durations longer than the
    step produce overlapping slots and shorter ones leave gaps.

    Args:
        reference_date: Any moment on the day to generate
        start_hour: First slot start hour (H0)
        end_hour: End of the daily window (H1)
        duration_minutes: Length of each slot
        step_minutes: Distance between consecutive slot starts

    Returns:
        Ordered list of available CandidateSlot objects, empty if H0 >= H1
    """
    if duration_minutes <= 0:
        raise ValueError(f"Slot duration must be positive, got {duration_minutes}")
    if step_minutes <= 0:
        raise ValueError(f"Slot step must be positive, got {step_minutes}")

    if start_hour >= end_hour:
        return []

    day_start = reference_date.start_of("day")
    window_end = _hour_on(day_start, end_hour)
    current = _hour_on(day_start, start_hour)

    slots: List[CandidateSlot] = []

    while current.add(minutes=step_minutes) <= window_end:
        slots.append(
            CandidateSlot(
                interval=Interval(start=current, end=current.add(minutes=duration_minutes))
            )
        )
        current = current.add(minutes=step_minutes)

    return slots


class SlotGenerator:
    """
    Generates candidate slots over a date range, one daily grid per working day.
    """

    def __init__(self, working_hours: WorkingHours, step_minutes: int = DEFAULT_STEP_MINUTES):
        self.working_hours = working_hours
        self.step_minutes = step_minutes

    def generate_for_day(self, reference_date: DateTime, duration_minutes: int) -> List[CandidateSlot]:
        """Generate the grid for one day within the configured working hours."""
        return generate_day_slots(
            reference_date=reference_date,
            start_hour=self.working_hours.start_hour,
            end_hour=self.working_hours.end_hour,
            duration_minutes=duration_minutes,
            step_minutes=self.step_minutes,
        )

    def generate(
        self,
        start_date: DateTime,
        end_date: DateTime,
        duration_minutes: int,
    ) -> List[CandidateSlot]:
        """
        Generate all candidate slots whose start lies in ``[start_date, end_date)``.

        Days listed in the working hours' excluded weekdays are skipped.
        """
        slots: List[CandidateSlot] = []

        current = start_date.start_of("day")

        while current < end_date:
            if self.working_hours.is_working_day(current):
                slots.extend(
                    slot for slot in self.generate_for_day(current, duration_minutes)
                    if start_date <= slot.start < end_date
                )

            current = current.add(days=1)

        return slots
