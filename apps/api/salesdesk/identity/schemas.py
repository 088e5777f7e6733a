from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from salesdesk.crm.schemas import PartialUpdate


RoleName = Literal[
    "System Admin",
    "Sales Manager",
    "Sales Executive",
    "Marketing Executive",
    "Support Executive",
    "Customer",
]


class RegisterRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    mobile: str = Field(min_length=6, max_length=32)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr | None = None
    mobile: str | None = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def _one_identifier(self) -> LoginRequest:
        if not self.email and not self.mobile:
            raise ValueError("Please provide email or mobile")
        return self


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class UserCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    mobile: str = Field(min_length=6, max_length=32)
    password: str = Field(min_length=6, max_length=128)
    role: RoleName = "Sales Executive"
    is_active: bool = True


class UserUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset(
        {"first_name", "last_name", "email", "mobile", "role", "is_active"}
    )

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, min_length=6, max_length=32)
    avatar: str | None = None
    role: RoleName | None = None
    is_active: bool | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str
    mobile: str
    role: str
    is_active: bool
    avatar: str | None
    last_login: datetime | None
    created_at: datetime
    updated_at: datetime


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
