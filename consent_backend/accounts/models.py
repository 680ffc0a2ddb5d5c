"""
Account data models
"""

import json
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserProfile(BaseModel):
    """Profile of the authenticated user; never carries the password hash"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[datetime] = None
    photo_url: str = ""
    is_subscribed: bool = False
    subscription_end_date: Optional[datetime] = None
    score: int = 0
    badges: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("first_name", "last_name", "photo_url", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: Optional[str]) -> str:
        return value or ""

    @field_validator("badges", mode="before")
    @classmethod
    def _decode_badges(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return json.loads(value) if value else []
        return value


class AccountInfo(BaseModel):
    """Profile together with the current pack credit balance"""
    user: UserProfile
    pack_quantity: int = 0


class AuthResult(BaseModel):
    token: str
    user: UserProfile
