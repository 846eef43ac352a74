import random
import uuid
from types import SimpleNamespace

import pytest

from talent_training.core.errors import SessionNotFoundError, StorageError, ValidationError
from talent_training.models.quiz import QuizQuestion
from talent_training.services.quiz_session import (
    QuizSession,
    SessionState,
    compute_score,
    is_passing,
    normalize_selection,
    start_session,
)


class _FakeLedger:
    def __init__(self, latest: int = 0, fail: bool = False):
        self.rows = []
        self.latest = latest
        self.fail = fail

    def append(self, attempt):
        if self.fail:
            raise StorageError("insert failed")
        self.rows.append(attempt)
        return attempt

    def latest_attempt_number(self, user_id):
        return self.latest


class _RecordingSink:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)
        return True


class _ExplodingSink:
    def notify(self, event):
        raise RuntimeError("smtp down")


def _questions(n: int) -> list[QuizQuestion]:
    tags = "ABCD"
    return [
        QuizQuestion(
            id=uuid.uuid4(),
            question=f"Question {i}",
            option_a="a",
            option_b="b",
            option_c="c",
            option_d="d",
            correct_answer=tags[i % 4],
        )
        for i in range(n)
    ]


def _participant():
    return SimpleNamespace(id=uuid.uuid4(), first_name="Jane", last_name="Doe", email="jane@example.com")


def _wrong(tag: str) -> str:
    return "A" if tag != "A" else "B"


def _session(n=3, *, ledger=None, sink=None, latest=0):
    ledger = ledger or _FakeLedger(latest=latest)
    s = start_session(
        participant=_participant(),
        question_bank=_questions(n),
        ledger=ledger,
        notifier=sink,
        rng=random.Random(7),
    )
    return s, ledger


def test_compute_score_rounds_half_up():
    assert compute_score(10, 10) == 100
    assert compute_score(9, 10) == 90
    assert compute_score(1, 3) == 33
    assert compute_score(2, 3) == 67
    assert compute_score(1, 8) == 13
    assert compute_score(0, 5) == 0


def test_only_perfect_score_passes():
    assert is_passing(100)
    assert not is_passing(99)
    assert not is_passing(0)


def test_normalize_selection():
    assert normalize_selection(" b ") == "B"
    with pytest.raises(ValidationError, match="please select an answer"):
        normalize_selection(None)
    with pytest.raises(ValidationError):
        normalize_selection("E")


def test_all_correct_submits_and_notifies_once():
    sink = _RecordingSink()
    s, ledger = _session(3, sink=sink)

    assert s.state == SessionState.in_progress
    assert s.attempt_number == 1

    result = None
    for _ in range(3):
        result = s.answer(s.current_question.correct_answer)

    assert result is not None
    assert (result.score, result.passed, result.attempt_number) == (100, True, 1)
    assert s.state == SessionState.submitted_passed
    assert len(ledger.rows) == 1
    assert ledger.rows[0].score == 100 and ledger.rows[0].passed is True
    assert len(sink.events) == 1
    assert sink.events[0].email == "jane@example.com"
    assert sink.events[0].attempt_count == 1


def test_one_wrong_of_ten_fails_and_retake_increments_attempt():
    sink = _RecordingSink()
    s, ledger = _session(10, sink=sink)

    for i in range(10):
        tag = s.current_question.correct_answer
        s.answer(_wrong(tag) if i == 4 else tag)

    assert s.result.score == 90
    assert s.result.passed is False
    assert s.state == SessionState.submitted_failed
    assert sink.events == []

    s.retake()
    assert s.attempt_number == 2
    assert s.state == SessionState.in_progress
    assert s.index == 0
    assert s.answers == {}
    assert s.result is None
    assert len(ledger.rows) == 1


def test_attempt_number_follows_ledger():
    s, _ = _session(2, latest=4)
    assert s.attempt_number == 5


def test_previous_keeps_recorded_answer():
    s, _ = _session(3)
    first = s.current_question.correct_answer
    s.answer(first)

    assert s.index == 1
    assert s.previous() == first
    assert s.index == 0
    assert s.selected_for_current() == first


def test_previous_on_first_question_is_rejected():
    s, _ = _session(3)
    with pytest.raises(ValidationError):
        s.previous()
    assert s.index == 0


def test_empty_selection_leaves_session_untouched():
    s, _ = _session(3)
    with pytest.raises(ValidationError, match="please select an answer"):
        s.answer("")
    assert s.index == 0
    assert s.answers == {}


def test_submit_requires_every_answer():
    s, ledger = _session(3)
    s.answer("A")
    with pytest.raises(ValidationError):
        s.submit()
    assert s.state == SessionState.in_progress
    assert ledger.rows == []


def test_storage_failure_keeps_session_in_progress():
    ledger = _FakeLedger(fail=True)
    s, _ = _session(2, ledger=ledger)
    s.answer(s.current_question.correct_answer)

    with pytest.raises(StorageError):
        s.answer(s.current_question.correct_answer)

    assert s.state == SessionState.in_progress
    assert s.result is None
    assert len(s.answers) == 2

    ledger.fail = False
    result = s.submit()
    assert result.passed is True
    assert len(ledger.rows) == 1


def test_notification_failure_does_not_undo_submission():
    s, ledger = _session(1, sink=_ExplodingSink())
    result = s.answer(s.current_question.correct_answer)

    assert result.passed is True
    assert s.state == SessionState.submitted_passed
    assert len(ledger.rows) == 1


def test_retake_rejected_after_pass_and_while_in_progress():
    s, _ = _session(1)
    with pytest.raises(ValidationError):
        s.retake()

    s.answer(s.current_question.correct_answer)
    with pytest.raises(ValidationError, match="already passed"):
        s.retake()
    assert s.attempt_number == 1


def test_answer_after_submission_is_rejected():
    s, ledger = _session(1)
    s.answer(_wrong(s.current_question.correct_answer))
    with pytest.raises(ValidationError):
        s.answer("A")
    assert len(ledger.rows) == 1


def test_start_with_empty_bank_is_rejected():
    with pytest.raises(ValidationError):
        start_session(participant=_participant(), question_bank=[], ledger=_FakeLedger())


def test_review_lists_selected_and_correct_answers():
    s, _ = _session(2)
    first = s.current_question
    s.answer(_wrong(first.correct_answer))
    s.answer(s.current_question.correct_answer)

    items = s.review()
    assert len(items) == 2
    assert items[0]["question_id"] == str(first.id)
    assert items[0]["correct"] is False
    assert items[0]["correct_answer"] == first.correct_answer
    assert items[1]["correct"] is True


def test_session_survives_serialization():
    s, ledger = _session(3)
    s.answer(s.current_question.correct_answer)

    data = s.to_dict()
    restored = QuizSession.from_dict(
        data,
        participant=s.participant,
        questions_by_id={str(q.id): q for q in s.questions},
        ledger=ledger,
    )

    assert restored.state == SessionState.in_progress
    assert restored.index == 1
    assert [q.id for q in restored.questions] == [q.id for q in s.questions]
    assert restored.answers == s.answers


def test_restore_rejects_other_user_and_missing_questions():
    s, ledger = _session(2)
    data = s.to_dict()

    with pytest.raises(SessionNotFoundError):
        QuizSession.from_dict(data, participant=_participant(), questions_by_id={}, ledger=ledger)

    with pytest.raises(SessionNotFoundError):
        QuizSession.from_dict(
            data,
            participant=s.participant,
            questions_by_id={str(s.questions[0].id): s.questions[0]},
            ledger=ledger,
        )


def test_reanswering_after_previous_overwrites_answer():
    s, ledger = _session(3)
    first = s.current_question
    s.answer(_wrong(first.correct_answer))
    assert s.previous() == _wrong(first.correct_answer)

    s.answer(first.correct_answer)
    assert s.answers[0].selected_answer == first.correct_answer
    assert s.answers[0].correct is True

    result = None
    while result is None:
        result = s.answer(s.current_question.correct_answer)
    assert result.score == 100
    assert result.passed is True
    assert len(ledger.rows) == 1


class _CountingRandom(random.Random):
    def __init__(self, seed):
        super().__init__(seed)
        self.shuffles = 0

    def shuffle(self, x):
        self.shuffles += 1
        super().shuffle(x)


def test_retake_reshuffles_questions():
    rng = _CountingRandom(11)
    s = start_session(participant=_participant(), question_bank=_questions(10), ledger=_FakeLedger(), rng=rng)
    before = [q.id for q in s.questions]

    while s.state == SessionState.in_progress:
        s.answer(_wrong(s.current_question.correct_answer))
    s.retake()

    assert rng.shuffles == 2
    assert sorted(str(q.id) for q in s.questions) == sorted(str(i) for i in before)
    assert [q.id for q in s.questions] != before


@pytest.mark.parametrize(
    "patch",
    [
        {"answers": {"0": {"unexpected": "field"}}},
        {"answers": ["not", "a", "mapping"]},
        {"index": "first"},
        {"started_at": "yesterday"},
        {"result": {"score": 100}},
        {"state": "paused"},
    ],
)
def test_malformed_payload_is_reported_as_missing_session(patch):
    s, ledger = _session(2)
    data = {**s.to_dict(), **patch}

    with pytest.raises(SessionNotFoundError):
        QuizSession.from_dict(
            data,
            participant=s.participant,
            questions_by_id={str(q.id): q for q in s.questions},
            ledger=ledger,
        )
