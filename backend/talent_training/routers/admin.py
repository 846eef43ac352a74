from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from talent_training.core.errors import ValidationError
from talent_training.core.security import require_admin
from talent_training.db.session import get_db
from talent_training.models.profile import Profile
from talent_training.schemas.admin import TrainingReportResponse
from talent_training.services.record_store import RecordStore
from talent_training.services.reports import training_report

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=TrainingReportResponse)
def list_users(
    tab: str = Query(default="all"),
    search: str | None = Query(default=None, max_length=200),
    sort: str = Query(default="name"),
    direction: str = Query(default="asc"),
    db: Session = Depends(get_db),
    _: Profile = Depends(require_admin),
):
    try:
        rows = training_report(RecordStore(db), tab=tab, search=search, sort=sort, direction=direction)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {
        "total": len(rows),
        "completed": sum(1 for r in rows if r["passed"]),
        "items": rows,
    }
