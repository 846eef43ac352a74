from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from talent_training.core.errors import StorageError, ValidationError
from talent_training.models.attempt import QuizAttempt
from talent_training.models.profile import Profile
from talent_training.models.progress import SectionProgress
from talent_training.services.catalog import section_ids
from talent_training.services.progress_gate import completion_percentage, count_completed
from talent_training.services.record_store import RecordStore

log = logging.getLogger(__name__)

TABS = {"all", "completed", "incomplete"}
SORT_KEYS = {"name", "email", "progress", "completion", "attempts"}


def _load_all(store: RecordStore, model, **kwargs) -> list:
    # Admin view keeps rendering with whatever loaded.
    try:
        return store.query(model, **kwargs)
    except StorageError:
        log.warning("admin report: failed to load %s", model.__tablename__, exc_info=True)
        return []


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_user_rows(store: RecordStore) -> list[dict[str, Any]]:
    """One summary row per profile, newest registrations first."""
    profiles = _load_all(store, Profile, order_by="created_at", descending=True)
    progress = _load_all(store, SectionProgress)
    attempts = _load_all(store, QuizAttempt, order_by="attempt_number", descending=True)

    done_by_user: dict[Any, set[str]] = defaultdict(set)
    for p in progress:
        if p.completed:
            done_by_user[p.user_id].add(p.section_id)

    attempts_by_user: dict[Any, list[QuizAttempt]] = defaultdict(list)
    for a in attempts:
        attempts_by_user[a.user_id].append(a)

    ids = section_ids()
    rows = []
    for prof in profiles:
        done = done_by_user.get(prof.id, set())
        user_attempts = attempts_by_user.get(prof.id, [])
        passed = [a for a in user_attempts if a.passed]
        first_pass = min(passed, key=lambda a: a.attempt_number) if passed else None
        last = user_attempts[0] if user_attempts else None

        rows.append(
            {
                "user_id": str(prof.id),
                "name": prof.full_name,
                "email": prof.email,
                "is_admin": bool(prof.is_admin),
                "completed_sections": count_completed(ids, done),
                "total_sections": len(ids),
                "progress_percent": completion_percentage(ids, done),
                "attempts": len(user_attempts),
                "last_attempt_at": _iso(last.completed_at) if last else None,
                "passed": first_pass is not None,
                "passed_at": _iso(first_pass.completed_at) if first_pass else None,
                "registered_at": _iso(prof.created_at),
            }
        )
    return rows


def _sort_key(key: str):
    if key == "name":
        return lambda r: (r["name"] or "").lower()
    if key == "email":
        return lambda r: (r["email"] or "").lower()
    if key == "progress":
        return lambda r: r["progress_percent"]
    if key == "attempts":
        return lambda r: r["attempts"]
    # completion: passed users after the rest, then by pass date
    return lambda r: (r["passed"], r["passed_at"] or "")


def training_report(
    store: RecordStore,
    *,
    tab: str = "all",
    search: str | None = None,
    sort: str = "name",
    direction: str = "asc",
) -> list[dict[str, Any]]:
    if tab not in TABS:
        raise ValidationError(f"tab must be one of {', '.join(sorted(TABS))}")
    if sort not in SORT_KEYS:
        raise ValidationError(f"sort must be one of {', '.join(sorted(SORT_KEYS))}")
    if direction not in {"asc", "desc"}:
        raise ValidationError("direction must be asc or desc")

    rows = build_user_rows(store)

    needle = (search or "").strip().lower()
    if needle:
        rows = [r for r in rows if needle in f"{r['name']} {r['email']}".lower()]

    if tab == "completed":
        rows = [r for r in rows if r["passed"]]
    elif tab == "incomplete":
        rows = [r for r in rows if not r["passed"]]

    return sorted(rows, key=_sort_key(sort), reverse=direction == "desc")
