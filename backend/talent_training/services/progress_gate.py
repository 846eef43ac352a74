from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from talent_training.core.config import settings
from talent_training.core.errors import AccessDeniedError, StorageError, ValidationError
from talent_training.models.progress import SectionProgress
from talent_training.services.attempt_ledger import AttemptLedger
from talent_training.services.catalog import section_ids as catalog_section_ids
from talent_training.services.record_store import RecordStore

log = logging.getLogger(__name__)


class SectionStatus(str, enum.Enum):
    locked = "locked"
    available = "available"
    completed = "completed"


def classify_sections(section_ids: Sequence[str], completed_ids: Iterable[str]) -> dict[str, SectionStatus]:
    """Status of every section, in order.

    The first section is never locked; any later one opens once its
    predecessor is completed. A completed section stays completed whatever
    its neighbours look like.
    """
    done = set(completed_ids)
    out: dict[str, SectionStatus] = {}
    prev_completed = True
    for sid in section_ids:
        if sid in done:
            out[sid] = SectionStatus.completed
        elif prev_completed:
            out[sid] = SectionStatus.available
        else:
            out[sid] = SectionStatus.locked
        prev_completed = sid in done
    return out


def section_status(section_id: str, section_ids: Sequence[str], completed_ids: Iterable[str]) -> SectionStatus:
    statuses = classify_sections(section_ids, completed_ids)
    if section_id not in statuses:
        raise ValidationError(f"unknown section: {section_id}")
    return statuses[section_id]


def count_completed(section_ids: Sequence[str], completed_ids: Iterable[str]) -> int:
    done = set(completed_ids)
    return sum(1 for sid in section_ids if sid in done)


def quiz_available(section_ids: Sequence[str], completed_ids: Iterable[str]) -> bool:
    return count_completed(section_ids, completed_ids) == len(section_ids)


def completion_percentage(section_ids: Sequence[str], completed_ids: Iterable[str]) -> int:
    if not section_ids:
        return 0
    return int(round(100 * count_completed(section_ids, completed_ids) / len(section_ids)))


class ProgressGate:
    """Per-user gate over persisted SectionProgress rows.

    Nothing is cached: every call re-reads the store. Read failures degrade
    to "nothing completed" so navigation keeps working.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        ledger: AttemptLedger | None = None,
        section_ids: Sequence[str] | None = None,
        watch_threshold: float | None = None,
    ):
        self.store = store
        self.ledger = ledger or AttemptLedger(store)
        self.section_ids = list(section_ids) if section_ids is not None else catalog_section_ids()
        self.watch_threshold = float(settings.training_watch_threshold if watch_threshold is None else watch_threshold)

    def load_progress(self, user_id: uuid.UUID) -> list[SectionProgress]:
        try:
            return self.store.query(SectionProgress, user_id=user_id)
        except StorageError:
            log.warning("progress read failed for user %s; treating as empty", user_id, exc_info=True)
            return []

    def completed_section_ids(self, user_id: uuid.UUID) -> set[str]:
        return {p.section_id for p in self.load_progress(user_id) if p.completed}

    def statuses(self, user_id: uuid.UUID) -> dict[str, SectionStatus]:
        return classify_sections(self.section_ids, self.completed_section_ids(user_id))

    def section_status(self, user_id: uuid.UUID, section_id: str) -> SectionStatus:
        return section_status(section_id, self.section_ids, self.completed_section_ids(user_id))

    def quiz_available(self, user_id: uuid.UUID) -> bool:
        return quiz_available(self.section_ids, self.completed_section_ids(user_id))

    def require_quiz_available(self, user_id: uuid.UUID) -> None:
        if not self.quiz_available(user_id):
            raise AccessDeniedError("complete all training sections first")

    def complete_section(self, user_id: uuid.UUID, section_id: str) -> SectionProgress:
        if section_id not in self.section_ids:
            raise ValidationError(f"unknown section: {section_id}")

        # Not load_progress: a failed read must raise, not look like "no rows".
        progress = self.store.query(SectionProgress, user_id=user_id)
        existing = next((p for p in progress if p.section_id == section_id), None)
        if existing is not None and existing.completed:
            return existing

        status = section_status(section_id, self.section_ids, {p.section_id for p in progress if p.completed})
        if status == SectionStatus.locked:
            raise ValidationError("complete the previous section first")

        now = datetime.utcnow()
        values: dict[str, Any] = {"completed": True}
        if existing is not None and existing.completion_date is None:
            values["completion_date"] = now
        # completion_date is written only when the row is created.
        record = self.store.upsert(
            SectionProgress,
            {"user_id": user_id, "section_id": section_id},
            values,
            on_insert={"completion_date": now},
        )
        log.info("section %s completed by user %s", section_id, user_id)
        return record

    def record_watch_progress(
        self, user_id: uuid.UUID, section_id: str, played_fraction: float
    ) -> SectionProgress | None:
        fraction = float(played_fraction)
        if not 0.0 <= fraction <= 1.0:
            raise ValidationError("played_fraction must be between 0 and 1")
        if section_id not in self.section_ids:
            raise ValidationError(f"unknown section: {section_id}")
        if fraction < self.watch_threshold:
            return None
        return self.complete_section(user_id, section_id)

    def summary(self, user_id: uuid.UUID) -> dict[str, Any]:
        progress = self.load_progress(user_id)
        done = {p.section_id for p in progress if p.completed}
        dates = {p.section_id: p.completion_date for p in progress if p.completed}
        statuses = classify_sections(self.section_ids, done)
        return {
            "statuses": statuses,
            "completion_dates": dates,
            "completed_count": count_completed(self.section_ids, done),
            "total_sections": len(self.section_ids),
            "completion_percentage": completion_percentage(self.section_ids, done),
            "quiz_available": quiz_available(self.section_ids, done),
            "quiz_passed": self.ledger.has_passed(user_id),
        }
