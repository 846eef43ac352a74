from __future__ import annotations

import argparse
import json
import os
import pathlib
import sys

# Allow running from the repo root or from backend/
sys.path.append(os.getcwd())
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from sqlalchemy import select

from talent_training.db.init_db import create_tables
from talent_training.db.session import SessionLocal
from talent_training.models.quiz import AnswerOption, QuizQuestion

_TAGS = [o.value for o in AnswerOption]


def _parse_item(raw: dict, pos: int) -> dict:
    question = str(raw.get("question") or "").strip()
    if not question:
        raise ValueError(f"item {pos}: question is empty")

    opts = raw.get("options") or {t: raw.get(f"option_{t.lower()}") for t in _TAGS}
    if isinstance(opts, list):
        opts = dict(zip(_TAGS, opts))
    missing = [t for t in _TAGS if not str(opts.get(t) or "").strip()]
    if missing:
        raise ValueError(f"item {pos}: missing options {', '.join(missing)}")

    correct = str(raw.get("correct_answer") or "").strip().upper()
    if correct not in _TAGS:
        raise ValueError(f"item {pos}: correct_answer must be one of {', '.join(_TAGS)}")

    return {
        "question": question,
        "option_a": str(opts["A"]).strip(),
        "option_b": str(opts["B"]).strip(),
        "option_c": str(opts["C"]).strip(),
        "option_d": str(opts["D"]).strip(),
        "correct_answer": correct,
    }


def main() -> int:
    p = argparse.ArgumentParser(description="Import quiz questions from a JSON file")
    p.add_argument("path", help="JSON file with a list of questions")
    p.add_argument("--replace", action="store_true", help="delete existing questions first")
    p.add_argument("--create-tables", action="store_true")
    args = p.parse_args()

    items = json.loads(pathlib.Path(args.path).read_text(encoding="utf-8"))
    if not isinstance(items, list):
        print("expected a JSON list of questions", file=sys.stderr)
        return 2

    try:
        rows = [_parse_item(raw, i + 1) for i, raw in enumerate(items)]
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    if args.create_tables:
        create_tables()

    db = SessionLocal()
    try:
        if args.replace:
            for q in db.scalars(select(QuizQuestion)):
                db.delete(q)
            db.flush()

        # Same question text is never imported twice.
        existing = {q.question for q in db.scalars(select(QuizQuestion))}
        added = 0
        for row in rows:
            if row["question"] in existing:
                continue
            db.add(QuizQuestion(**row))
            existing.add(row["question"])
            added += 1
        db.commit()
    finally:
        db.close()

    print(f"imported {added} question(s), skipped {len(rows) - added}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
