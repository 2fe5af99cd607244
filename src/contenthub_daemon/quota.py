"""Daily generation quota per website."""

import logging
from datetime import datetime, timedelta
from typing import Tuple

from .models import Website
from .storage import Storage

logger = logging.getLogger(__name__)


def day_window(as_of: datetime) -> Tuple[datetime, datetime]:
    """Return [midnight, next midnight) of the wall-clock day containing as_of."""
    start = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class QuotaTracker:
    """Computes how much of a website's daily budget is left.

    Counts are read fresh from storage on every call: completions land
    between invocations, so nothing is cached. The day boundary is the
    host's wall-clock midnight, not the website's configured timezone.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def completed_today(self, website: Website, as_of: datetime) -> int:
        start, end = day_window(as_of)
        return self.storage.count_completed_tasks(website.id, start, end)

    def remaining_budget(self, website: Website, as_of: datetime) -> int:
        """Return max(0, max_articles_per_day - completed generations today)."""
        completed = self.completed_today(website, as_of)
        remaining = max(0, website.max_articles_per_day - completed)
        logger.debug(
            f"Quota for {website.name}: {completed}/{website.max_articles_per_day} "
            f"used, {remaining} remaining"
        )
        return remaining
