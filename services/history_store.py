"""Bounded, most-recent-first analysis history kept under a single store key."""
from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from schemas.futures_analysis import FuturesAnalysis
from services.cache.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_KEY = "futures_history_v5"
DEFAULT_CAPACITY = 15


class HistoryStore:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = DEFAULT_HISTORY_KEY,
        capacity: int = DEFAULT_CAPACITY,
    ):
        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self._kv = kv
        self.key = key
        self.capacity = capacity

    def load(self) -> List[FuturesAnalysis]:
        raw = self._kv.get(self.key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.error("history.load.corrupt key=%s type=%s", self.key, type(raw).__name__)
            return []
        try:
            return [FuturesAnalysis.model_validate(item) for item in raw]
        except ValidationError:
            logger.exception("history.load.corrupt key=%s", self.key)
            return []

    def save(self, record: FuturesAnalysis) -> List[FuturesAnalysis]:
        """Put `record` first, replacing any entry for the same commodity."""
        others = [h for h in self.load() if h.commodity != record.commodity]
        updated = [record, *others][: self.capacity]
        self._kv.set(self.key, [h.model_dump(mode="json") for h in updated])
        logger.info("history.saved commodity=%s size=%s", record.commodity, len(updated))
        return updated

    def get(self, analysis_id: str) -> Optional[FuturesAnalysis]:
        for record in self.load():
            if record.id == analysis_id:
                return record
        return None

    def clear(self) -> None:
        self._kv.delete(self.key)
        logger.info("history.cleared key=%s", self.key)
