"""
Tagged outcomes returned across component boundaries.

Validation and signing never raise to their caller; they return one of
these variants and the wizard decides the transition.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------
class RejectionReason(str, Enum):
    NOT_A_PDF = "not-a-pdf"
    TOO_LARGE = "too-large"
    ENCRYPTED = "encrypted-or-password-protected"
    UNREADABLE = "unreadable"


class Accepted(BaseModel):
    kind: Literal["accepted"] = "accepted"

    model_config = ConfigDict(frozen=True, extra="forbid")


class Rejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    reason: RejectionReason
    detail: Optional[str] = Field(
        None,
        description="Limit text (too-large) or parser message (unreadable)",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


ValidationOutcome = Union[Accepted, Rejected]


# ----------------------------------------------------------------------
# Signing
# ----------------------------------------------------------------------
class FailureCause(str, Enum):
    NETWORK_ERROR = "network-error"
    SERVER_REJECTED = "server-rejected"
    SERVER_ERROR = "server-error"


class Signed(BaseModel):
    kind: Literal["signed"] = "signed"
    content: bytes = Field(..., repr=False)

    model_config = ConfigDict(frozen=True, extra="forbid")


class SigningFailed(BaseModel):
    kind: Literal["failed"] = "failed"
    cause: FailureCause
    status_code: Optional[int] = None
    detail: Optional[str] = Field(
        None,
        description="Server-provided error string or transport error text",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


SigningResult = Union[Signed, SigningFailed]
