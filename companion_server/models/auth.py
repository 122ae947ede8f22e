from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PendingAuthorization(BaseModel):
    """
    One pairing attempt for one app name.

    Identity fields are read-only; only the consent orchestrator moves
    `status` away from `pending`.
    """

    id: str = Field(frozen=True)
    appName: str = Field(frozen=True)
    code: str = Field(frozen=True)
    issuedAt: datetime = Field(frozen=True)
    expiresAt: datetime = Field(frozen=True)
    status: AuthorizationStatus = AuthorizationStatus.PENDING

    @property
    def app_name(self) -> str:
        return self.appName

    @property
    def is_terminal(self) -> bool:
        return self.status is not AuthorizationStatus.PENDING


class AuthToken(BaseModel):
    appName: str
    secretHash: str
    issuedAt: datetime


# =========================
# REQUEST / RESPONSE BODIES
# =========================

class CodeRequestBody(BaseModel):
    appName: str = Field(min_length=1, max_length=64)


class TokenRequestBody(BaseModel):
    appName: str = Field(min_length=1, max_length=64)
    code: str = Field(min_length=1, max_length=16)


class CodeResponse(BaseModel):
    code: str


class TokenResponse(BaseModel):
    token: str


class ConsentView(BaseModel):
    """What the operator surface shows the local user."""

    id: str
    appName: str
    code: str
    expiresAt: datetime
