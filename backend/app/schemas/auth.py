from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from backend.app.core.security import validate_password_strength
from backend.app.models.user import RoleEnum


def _validate_pw(v: str) -> str:
    error = validate_password_strength(v)
    if error:
        raise ValueError(error)
    return v


# ─── Registration / login ───────────────────────────────────────────────────


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, v: str) -> str:
        return _validate_pw(v)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class TwoFactorLoginIn(BaseModel):
    pending_token: str
    code: str | None = Field(None, max_length=10)
    backup_code: str | None = Field(None, max_length=32)

    @model_validator(mode="after")
    def exactly_one_factor(self) -> "TwoFactorLoginIn":
        if bool(self.code) == bool(self.backup_code):
            raise ValueError("Provide either a code or a backup code")
        return self


# ─── Users ──────────────────────────────────────────────────────────────────


class UserOut(BaseModel):
    id: UUID
    name: str
    email: str
    role: RoleEnum
    two_factor_enabled: bool
    created_at: datetime | None = None
    last_login: datetime | None = None

    class Config:
        from_attributes = True


class ProfileOut(UserOut):
    backup_codes_remaining: int = 0


class ProfileUpdateIn(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    email: EmailStr | None = None
    password: str | None = Field(None, max_length=128)
    current_password: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_pw(v)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class LoginOut(BaseModel):
    two_factor_required: bool = False
    access_token: str | None = None
    token_type: str = "bearer"
    pending_token: str | None = None
    user: UserOut | None = None
    detail: str | None = None


# ─── 2FA ────────────────────────────────────────────────────────────────────


class TwoFactorSetupOut(BaseModel):
    otpauth_url: str
    qr_code: str
    secret: str | None = None  # only outside production with EXPOSE_TOTP_SECRET


class TwoFactorVerifyIn(BaseModel):
    code: str = Field(..., min_length=6, max_length=10)


class BackupCodesOut(BaseModel):
    detail: str
    backup_codes: list[str]


class TwoFactorDisableIn(BaseModel):
    code: str | None = Field(None, max_length=10)
    password: str | None = Field(None, max_length=128)

    @model_validator(mode="after")
    def require_proof(self) -> "TwoFactorDisableIn":
        if not self.code and not self.password:
            raise ValueError("Provide either a valid 2FA code or your password")
        return self


class MessageOut(BaseModel):
    detail: str
