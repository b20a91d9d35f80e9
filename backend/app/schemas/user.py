from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from app.models import UserRole


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    photo_url: Optional[str] = None
    role: UserRole
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    # Omitted fields are left alone; photo_url may be sent as null to clear it
    name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None
