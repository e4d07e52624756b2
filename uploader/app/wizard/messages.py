"""
User-facing notification text and severity policy.
"""

from __future__ import annotations

from typing import Tuple

from uploader.app.collaborators.notifications import Severity
from uploader.app.schemas.outcomes import (
    FailureCause,
    Rejected,
    RejectionReason,
    SigningFailed,
)

SIGNED_OK = "PDF signed successfully!"


def format_limit(limit_mb: float) -> str:
    return f"{limit_mb:g} MB"


def drop_rejected_message(limit_mb: float) -> str:
    return (
        "File type or size not supported. "
        f"Please upload a PDF ≤ {format_limit(limit_mb)}."
    )


def rejection_notice(outcome: Rejected) -> Tuple[Severity, str]:
    reason = outcome.reason

    if reason is RejectionReason.NOT_A_PDF:
        return Severity.ERROR, "File type not supported. Only PDF files are allowed."

    if reason is RejectionReason.TOO_LARGE:
        limit = outcome.detail or "the size"
        return Severity.ERROR, f"File size exceeds {limit} limit."

    if reason is RejectionReason.ENCRYPTED:
        return (
            Severity.WARNING,
            "File is password protected. Remove the password and try again.",
        )

    return Severity.ERROR, f"Unable to read PDF: {outcome.detail or 'unknown error'}"


def failure_notice(result: SigningFailed) -> Tuple[Severity, str]:
    # 413 and any other 4xx share the server-rejected path; the server's
    # own error text tells them apart.
    if result.cause is FailureCause.SERVER_REJECTED and result.detail:
        return Severity.ERROR, f"Signing failed: {result.detail}"

    if result.cause is FailureCause.NETWORK_ERROR:
        return (
            Severity.ERROR,
            "Signing failed: the signing service could not be reached. "
            "Please try again later.",
        )

    return Severity.ERROR, "Signing failed. Please try again later."
