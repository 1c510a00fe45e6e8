"""
Availability evaluation of candidate slots against members' busy intervals.

This is the heart of the application: pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from typing import List, Sequence

from .models import CandidateSlot, Conflict, Interval, MemberAvailability


def conflicts_with(slot: Interval, busy: Interval) -> bool:
    """
    Inclusive conflict test between a slot and a busy interval.

    True when the slot start or end falls inside the busy interval, or the
    busy start falls inside the slot, all bounds included. Intervals that
    only touch at an endpoint therefore conflict.
    """
    return (
        busy.contains(slot.start)
        or busy.contains(slot.end)
        or slot.contains(busy.start)
    )


class AvailabilityEvaluator:
    """
    Classifies candidate slots as available or conflicting.

    Algorithm:
    1. For each slot, walk members in order
    2. For each member, walk their busy intervals in order
    3. Record a conflict for every busy interval that touches the slot
    4. A slot with any conflict is unavailable
    """

    def evaluate(
        self,
        slots: Sequence[CandidateSlot],
        members: Sequence[MemberAvailability],
    ) -> List[CandidateSlot]:
        """
        Annotate slots with availability and conflicts.

        Args:
            slots: Ordered candidate slots
            members: Members with their busy records

        Returns:
            New CandidateSlot objects in the same order; inputs are not modified
        """
        return [self.evaluate_slot(slot.interval, members) for slot in slots]

    def evaluate_slot(
        self,
        interval: Interval,
        members: Sequence[MemberAvailability],
    ) -> CandidateSlot:
        """Evaluate a single slot interval against every member's busy records."""
        conflicts: List[Conflict] = []

        for member in members:
            for busy in member.busy:
                if conflicts_with(interval, busy.interval):
                    conflicts.append(Conflict(member_name=member.name, label=busy.label))

        return CandidateSlot(
            interval=interval,
            available=not conflicts,
            conflicts=conflicts,
        )
