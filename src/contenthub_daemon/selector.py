"""Keyword selection for a website's generation backlog."""

from typing import List

from .models import KeywordPlan, Website
from .storage import Storage


class KeywordSelector:
    """Picks the next pending keyword plans for a website.

    Order is priority ascending (1 = most urgent, 5 = least urgent), oldest
    first within a priority. Selection never changes status; the
    orchestrator claims each plan right before working on it.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def select_candidates(self, website: Website, limit: int) -> List[KeywordPlan]:
        """Return at most `limit` eligible plans in queue order."""
        if limit <= 0:
            return []
        return self.storage.get_pending_keyword_plans(website.id, limit)
