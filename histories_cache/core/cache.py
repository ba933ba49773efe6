"""
In-memory per-user cache of history records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from histories_cache.schemas import History


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    histories: List[History] = field(default_factory=list)
    cached_at: datetime = field(default_factory=_now)


class HistoriesStore:
    """Keyed store mapping a user id to its cached histories.

    Nothing here raises: unknown users read as ``None`` and updates or removals
    against them are no-ops. ``cached_at`` only moves on a full replace (or on
    the first ``add_history`` that creates an entry).
    """

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def user_ids(self) -> List[str]:
        return list(self._cache)

    def set_histories(self, user_id: str, histories: List[History]) -> None:
        self._cache[user_id] = CacheEntry(histories=list(histories), cached_at=_now())

    def get_histories(self, user_id: str) -> Optional[List[History]]:
        entry = self._cache.get(user_id)
        return list(entry.histories) if entry is not None else None

    def get_cache_entry(self, user_id: str) -> Optional[CacheEntry]:
        return self._cache.get(user_id)

    def add_history(self, user_id: str, history: History) -> None:
        entry = self._cache.get(user_id)
        if entry is None:
            self._cache[user_id] = CacheEntry(histories=[history], cached_at=_now())
            return
        entry.histories = entry.histories + [history]

    def update_history(self, user_id: str, history_id: str, history: History) -> bool:
        """Replace the first record matching ``history_id``; return whether one matched."""
        entry = self._cache.get(user_id)
        if entry is None:
            return False

        replaced = False
        updated = []
        for item in entry.histories:
            if not replaced and item.id == history_id:
                updated.append(history)
                replaced = True
            else:
                updated.append(item)

        if replaced:
            entry.histories = updated
        return replaced

    def remove_history(self, user_id: str, history_id: str) -> bool:
        """Drop the record matching ``history_id``; return whether one was removed."""
        entry = self._cache.get(user_id)
        if entry is None:
            return False

        remaining = [item for item in entry.histories if item.id != history_id]
        removed = len(remaining) != len(entry.histories)
        if removed:
            entry.histories = remaining
        return removed

    def clear_all(self) -> None:
        self._cache = {}
