from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from talent_training.core.errors import StorageError, ValidationError
from talent_training.core.security import get_current_user
from talent_training.db.session import get_db
from talent_training.models.profile import Profile
from talent_training.models.progress import SectionProgress
from talent_training.schemas.training import (
    SectionItem,
    SectionProgressResponse,
    TrainingOverviewResponse,
    WatchProgressRequest,
)
from talent_training.services.catalog import SECTIONS, TrainingSection, get_section
from talent_training.services.progress_gate import ProgressGate
from talent_training.services.record_store import RecordStore

router = APIRouter(prefix="/training", tags=["training"])


def _section_or_404(section_id: str) -> TrainingSection:
    section = get_section(section_id)
    if section is None:
        raise HTTPException(status_code=404, detail="training section not found")
    return section


def _section_item(section: TrainingSection, status: str, completion_date) -> dict:
    return {
        "id": section.id,
        "title": section.title,
        "description": section.description,
        "video_url": section.video_url,
        "duration": section.duration,
        "status": status,
        "completion_date": completion_date.isoformat() if completion_date else None,
    }


def _progress_response(gate: ProgressGate, user: Profile, section_id: str, record: SectionProgress | None) -> dict:
    return {
        "section_id": section_id,
        "status": gate.section_status(user.id, section_id).value,
        "completed": bool(record.completed) if record else False,
        "completion_date": record.completion_date.isoformat() if record and record.completion_date else None,
        "quiz_available": gate.quiz_available(user.id),
    }


@router.get("/sections", response_model=TrainingOverviewResponse)
def training_overview(db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    gate = ProgressGate(RecordStore(db))
    summary = gate.summary(user.id)

    return {
        "sections": [
            _section_item(s, summary["statuses"][s.id].value, summary["completion_dates"].get(s.id))
            for s in SECTIONS
        ],
        "completed_count": summary["completed_count"],
        "total_sections": summary["total_sections"],
        "completion_percentage": summary["completion_percentage"],
        "quiz_available": summary["quiz_available"],
        "quiz_passed": summary["quiz_passed"],
    }


@router.get("/sections/{section_id}", response_model=SectionItem)
def training_section(section_id: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    section = _section_or_404(section_id)
    gate = ProgressGate(RecordStore(db))
    record = next((p for p in gate.load_progress(user.id) if p.section_id == section.id and p.completed), None)
    return _section_item(section, gate.section_status(user.id, section.id).value, record.completion_date if record else None)


@router.post("/sections/{section_id}/progress", response_model=SectionProgressResponse)
def report_watch_progress(
    section_id: str,
    body: WatchProgressRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    section = _section_or_404(section_id)
    gate = ProgressGate(RecordStore(db))
    try:
        record = gate.record_watch_progress(user.id, section.id, body.played_fraction)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(status_code=503, detail="could not save training progress") from e
    return _progress_response(gate, user, section.id, record)


@router.post("/sections/{section_id}/complete", response_model=SectionProgressResponse)
def complete_section(section_id: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    section = _section_or_404(section_id)
    gate = ProgressGate(RecordStore(db))
    try:
        record = gate.complete_section(user.id, section.id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(status_code=503, detail="could not save training progress") from e
    return _progress_response(gate, user, section.id, record)
