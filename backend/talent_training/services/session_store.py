from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from talent_training.core.config import settings
from talent_training.services.quiz_session import QuizSession

log = logging.getLogger(__name__)


def session_key(user_id: uuid.UUID | str) -> str:
    return f"quiz_session:{user_id}"


class QuizSessionStore:
    """Keeps one serialized QuizSession per user in Redis between requests."""

    def __init__(self, redis, *, ttl_seconds: int | None = None):
        self.redis = redis
        self.ttl_seconds = int(ttl_seconds or settings.quiz_session_ttl_seconds)

    def save(self, session: QuizSession) -> None:
        self.redis.set(session_key(session.user_id), json.dumps(session.to_dict()), ex=self.ttl_seconds)

    def load(self, user_id: uuid.UUID) -> dict[str, Any] | None:
        raw = self.redis.get(session_key(user_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("dropping corrupted quiz session for user %s", user_id)
            self.delete(user_id)
            return None
        return data if isinstance(data, dict) else None

    def delete(self, user_id: uuid.UUID) -> None:
        self.redis.delete(session_key(user_id))
