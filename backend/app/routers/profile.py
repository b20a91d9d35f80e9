from datetime import datetime
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User
from app.schemas.common import ApiResponse
from app.schemas.user import ProfileResponse, ProfileUpdateRequest
from app.core.auth import require_member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])

MIN_NAME_LENGTH = 2
EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


@router.get("", response_model=ApiResponse[ProfileResponse])
def get_profile(
    user: User = Depends(require_member),
):
    return ApiResponse(message="Profile retrieved successfully", data=ProfileResponse.model_validate(user))


@router.put("", response_model=ApiResponse[ProfileResponse])
def update_profile(
    payload: ProfileUpdateRequest,
    user: User = Depends(require_member),
    db: Session = Depends(get_db),
):
    """
    Update name, email and/or photo.

    Only fields present in the body are touched. The email must not belong to
    another account.
    """
    provided = payload.model_fields_set

    if payload.name is not None and len(payload.name.strip()) < MIN_NAME_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name must be at least 2 characters long",
        )

    email = payload.email.strip() if payload.email is not None else None
    if email is not None:
        if not EMAIL_PATTERN.match(email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
        taken = db.query(User.id).filter(User.email == email, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already taken")

    updates = {}
    if payload.name is not None:
        updates["name"] = payload.name.strip()
    if email is not None:
        updates["email"] = email
    if "photo_url" in provided:
        updates["photo_url"] = payload.photo_url

    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    for field, value in updates.items():
        setattr(user, field, value)
    user.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    logger.info("User %s updated profile fields %s", user.id, sorted(updates))
    return ApiResponse(message="Profile updated successfully", data=ProfileResponse.model_validate(user))
