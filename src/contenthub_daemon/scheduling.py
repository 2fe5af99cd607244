"""Scheduling policies: which websites get generation budget in a run."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from .models import Website

EXHAUSTIVE = "exhaustive"
ROTATION = "rotation"
POLICY_NAMES = (EXHAUSTIVE, ROTATION)


def rotation_index(now: datetime, website_count: int, slot_minutes: int = 30) -> int:
    """Index of the website on duty at `now`.

    floor(minutes past the hour / slot_minutes) mod website_count. Pure, so
    a run can be replayed from its timestamp and the ordered website list.
    """
    if website_count <= 0:
        raise ValueError("website_count must be positive")
    if slot_minutes < 1:
        raise ValueError(f"slot_minutes must be at least 1, got {slot_minutes}")
    return (now.minute // slot_minutes) % website_count


class SchedulingPolicy(ABC):
    """Decides which eligible websites a run serves and how many keywords each."""

    name: str

    @abstractmethod
    def select_websites(self, eligible: List[Website], now: datetime) -> List[Website]:
        """Narrow the eligible websites (ordered by creation time) for this run."""

    @abstractmethod
    def keyword_limit(self, remaining_budget: int) -> int:
        """How many keywords to attempt for a website with this budget left."""


class ExhaustivePolicy(SchedulingPolicy):
    """Serve every eligible website, up to its whole remaining budget."""

    name = EXHAUSTIVE

    def select_websites(self, eligible: List[Website], now: datetime) -> List[Website]:
        return list(eligible)

    def keyword_limit(self, remaining_budget: int) -> int:
        return max(0, remaining_budget)


class RotationPolicy(SchedulingPolicy):
    """Serve one website per run, one keyword at a time.

    Keeps each run to a single AI call so provider rate limits and cost stay
    predictable. With the default 30 minute slots only the first two
    websites in creation order are ever on duty; use smaller slots for more
    websites.
    """

    name = ROTATION

    def __init__(self, slot_minutes: int = 30):
        if not 1 <= slot_minutes <= 60:
            raise ValueError(
                f"slot_minutes must be between 1 and 60, got {slot_minutes}"
            )
        self.slot_minutes = slot_minutes

    def select_websites(self, eligible: List[Website], now: datetime) -> List[Website]:
        if not eligible:
            return []
        return [eligible[rotation_index(now, len(eligible), self.slot_minutes)]]

    def keyword_limit(self, remaining_budget: int) -> int:
        return min(1, max(0, remaining_budget))


def create_policy(name: str, rotation_slot_minutes: int = 30) -> SchedulingPolicy:
    """Build the configured policy.

    Raises:
        ValueError: If the policy name is unknown
    """
    if name == EXHAUSTIVE:
        return ExhaustivePolicy()
    if name == ROTATION:
        return RotationPolicy(slot_minutes=rotation_slot_minutes)
    raise ValueError(f"Unknown scheduling policy: {name} (expected one of {POLICY_NAMES})")
