from __future__ import annotations

import logging
from threading import RLock
from typing import Optional

from backend.app.models import CandidateRecord
from backend.app.observability import ServiceMetrics
from backend.app.persistence import CandidatePersistence, StorageError

logger = logging.getLogger("recruiting_dashboard.store")


class StoreValidationError(Exception):
    pass


class StoreNotFoundError(Exception):
    pass


class CandidateStore:
    """Owns every candidate row, keyed by candidate_id.

    Writes go to the durable table first and only then replace the cached row,
    so a failed write leaves both views untouched. Upserts are full replaces:
    a field missing from the latest record is cleared.
    """

    def __init__(
        self,
        persistence: Optional[CandidatePersistence] = None,
        metrics: Optional[ServiceMetrics] = None,
    ) -> None:
        self._lock = RLock()
        self.persistence = persistence
        self.metrics = metrics or ServiceMetrics()
        self.candidates: dict[str, CandidateRecord] = {}

        if self.persistence:
            for record in self.persistence.list_candidates():
                self.candidates[record.candidate_id] = record
            logger.info("store_hydrated candidates=%s", len(self.candidates))

    def upsert(self, record: CandidateRecord) -> CandidateRecord:
        if not record.candidate_id or not record.candidate_id.strip():
            raise StoreValidationError("candidate_id is required")
        with self._lock:
            if self.persistence:
                try:
                    self.persistence.upsert_candidate(record)
                except StorageError:
                    self.metrics.record_storage_failure()
                    raise
            created = record.candidate_id not in self.candidates
            self.candidates[record.candidate_id] = record.model_copy()
        self.metrics.record_upsert(created=created)
        logger.info(
            "row_upserted candidate_id=%s created=%s",
            record.candidate_id,
            str(created).lower(),
        )
        return record

    def get_candidate(self, candidate_id: str) -> CandidateRecord:
        with self._lock:
            record = self.candidates.get(candidate_id)
        if not record:
            raise StoreNotFoundError(f"candidate not found: {candidate_id}")
        return record

    def list_candidates(self) -> list[CandidateRecord]:
        with self._lock:
            return list(self.candidates.values())

    def list_hires(self) -> list[CandidateRecord]:
        hires = [record for record in self.list_candidates() if record.is_hired]
        hires.sort(key=lambda record: record.hire_date or "", reverse=True)
        return hires
