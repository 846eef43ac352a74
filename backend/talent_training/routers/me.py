from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from talent_training.core.errors import StorageError
from talent_training.core.security import get_current_user
from talent_training.db.session import get_db
from talent_training.models.profile import Profile
from talent_training.schemas.me import MyProfileResponse, ProfileUpdateRequest
from talent_training.services.attempt_ledger import AttemptLedger
from talent_training.services.progress_gate import ProgressGate
from talent_training.services.record_store import RecordStore

router = APIRouter(prefix="/me", tags=["me"])


def _profile_payload(store: RecordStore, user: Profile) -> dict:
    ledger = AttemptLedger(store)
    summary = ProgressGate(store, ledger=ledger).summary(user.id)
    return {
        "id": str(user.id),
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "is_admin": bool(user.is_admin),
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "completed_sections": summary["completed_count"],
        "total_sections": summary["total_sections"],
        "quiz_attempts": ledger.latest_attempt_number(user.id),
        "quiz_passed": summary["quiz_passed"],
    }


@router.get("", response_model=MyProfileResponse)
def my_profile(db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    return _profile_payload(RecordStore(db), user)


@router.patch("", response_model=MyProfileResponse)
def update_my_profile(
    body: ProfileUpdateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    store = RecordStore(db)
    patch = {k: v.strip() for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if patch:
        try:
            user = store.update(Profile, user.id, patch) or user
        except StorageError as e:
            raise HTTPException(status_code=503, detail="could not update profile") from e
    return _profile_payload(store, user)
