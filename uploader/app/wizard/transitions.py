"""
Pure transition function for the upload wizard.

``reduce(state, event)`` never performs I/O. It returns the next state
plus a list of effects (notifications, handle releases, history records)
for the controller to carry out.

Events may carry a handle the controller already acquired. If a guard
rejects such an event, the reducer emits a ``ReleaseHandle`` for it so
no acquisition is ever left without its release.
"""

from __future__ import annotations

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from uploader.app.collaborators.notifications import Severity
from uploader.app.schemas.files import Document
from uploader.app.schemas.outcomes import (
    Accepted,
    Signed,
    SigningResult,
    ValidationOutcome,
)
from uploader.app.wizard.messages import (
    SIGNED_OK,
    drop_rejected_message,
    failure_notice,
    rejection_notice,
)
from uploader.app.wizard.state import Activity, WizardState, WizardStep


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
class ResetRequested(_Frozen):
    pass


class RemoveRequested(_Frozen):
    pass


class NewUploadRequested(_Frozen):
    pass


class TeardownRequested(_Frozen):
    pass


class DropRejected(_Frozen):
    limit_mb: float


class ValidationStarted(_Frozen):
    pass


class ValidationFinished(_Frozen):
    outcome: ValidationOutcome
    document: Optional[Document] = None
    preview_handle: Optional[str] = None


class SigningStarted(_Frozen):
    pass


class SigningFinished(_Frozen):
    result: SigningResult
    signed_handle: Optional[str] = None


class BackRequested(_Frozen):
    pass


class StepActivated(_Frozen):
    index: int = Field(..., ge=0)


WizardEvent = Union[
    ResetRequested,
    RemoveRequested,
    NewUploadRequested,
    TeardownRequested,
    DropRejected,
    ValidationStarted,
    ValidationFinished,
    SigningStarted,
    SigningFinished,
    BackRequested,
    StepActivated,
]


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------
class Notify(_Frozen):
    severity: Severity
    message: str


class ReleaseHandle(_Frozen):
    handle: str


class RecordHistory(_Frozen):
    name: str
    content: bytes = Field(..., repr=False)


Effect = Union[Notify, ReleaseHandle, RecordHistory]


class Transition(_Frozen):
    state: WizardState
    effects: Tuple[Effect, ...] = ()
    accepted: bool = True


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _ignore(state: WizardState, *carried: Optional[str]) -> Transition:
    return Transition(
        state=state,
        effects=tuple(ReleaseHandle(handle=h) for h in carried if h),
        accepted=False,
    )


def _release_all(state: WizardState) -> List[Effect]:
    return [
        ReleaseHandle(handle=h)
        for h in (state.signed_handle, state.preview_handle)
        if h is not None
    ]


def _reset(state: WizardState) -> Transition:
    return Transition(state=WizardState(), effects=tuple(_release_all(state)))


def _to_preview(state: WizardState, **changes) -> WizardState:
    return state.evolve(
        step=WizardStep.PREVIEW,
        signed_handle=None,
        activity=None,
        **changes,
    )


# ----------------------------------------------------------------------
# Reducer
# ----------------------------------------------------------------------
def reduce(state: WizardState, event: WizardEvent) -> Transition:
    if isinstance(event, TeardownRequested):
        # Unmount path: release everything, even mid-operation.
        return _reset(state)

    if isinstance(event, ValidationFinished):
        return _finish_validation(state, event)

    if isinstance(event, SigningFinished):
        return _finish_signing(state, event)

    # Everything below is a user action and is blocked while busy.
    if state.is_busy:
        return _ignore(state)

    if isinstance(event, ResetRequested):
        return _reset(state)

    if isinstance(event, RemoveRequested):
        if state.step is not WizardStep.PREVIEW:
            return _ignore(state)
        return _reset(state)

    if isinstance(event, NewUploadRequested):
        if state.step is not WizardStep.DONE:
            return _ignore(state)
        return _reset(state)

    if isinstance(event, DropRejected):
        if state.step is not WizardStep.UPLOAD:
            return _ignore(state)
        return Transition(
            state=state.evolve(message=None),
            effects=(
                Notify(
                    severity=Severity.ERROR,
                    message=drop_rejected_message(event.limit_mb),
                ),
            ),
        )

    if isinstance(event, ValidationStarted):
        if state.step is not WizardStep.UPLOAD:
            return _ignore(state)
        return Transition(
            state=state.evolve(activity=Activity.VALIDATING, message=None),
        )

    if isinstance(event, SigningStarted):
        if state.step is not WizardStep.PREVIEW:
            return _ignore(state)
        return Transition(
            state=state.evolve(
                step=WizardStep.SIGNING,
                activity=Activity.SIGNING,
                message=None,
            ),
        )

    if isinstance(event, BackRequested):
        return _go_back(state)

    if isinstance(event, StepActivated):
        return _activate_step(state, event.index)

    raise TypeError(f"unknown wizard event: {type(event).__name__}")


def _finish_validation(state: WizardState, event: ValidationFinished) -> Transition:
    if state.activity is not Activity.VALIDATING:
        return _ignore(state, event.preview_handle)

    if isinstance(event.outcome, Accepted):
        if event.document is None or event.preview_handle is None:
            raise ValueError("accepted validation must carry document and handle")
        return Transition(
            state=_to_preview(
                state,
                document=event.document,
                preview_handle=event.preview_handle,
                message=None,
            ),
        )

    severity, message = rejection_notice(event.outcome)
    effects: List[Effect] = [Notify(severity=severity, message=message)]
    if event.preview_handle:
        effects.append(ReleaseHandle(handle=event.preview_handle))

    return Transition(
        state=state.evolve(activity=None, message=message),
        effects=tuple(effects),
    )


def _finish_signing(state: WizardState, event: SigningFinished) -> Transition:
    if state.activity is not Activity.SIGNING:
        return _ignore(state, event.signed_handle)

    if isinstance(event.result, Signed):
        if event.signed_handle is None:
            raise ValueError("signed result must carry a signed handle")
        return Transition(
            state=state.evolve(
                step=WizardStep.DONE,
                signed_handle=event.signed_handle,
                activity=None,
                message=None,
            ),
            effects=(
                Notify(severity=Severity.SUCCESS, message=SIGNED_OK),
                RecordHistory(
                    name=state.document.download_name,
                    content=event.result.content,
                ),
            ),
        )

    severity, message = failure_notice(event.result)
    effects: List[Effect] = [Notify(severity=severity, message=message)]
    if event.signed_handle:
        effects.append(ReleaseHandle(handle=event.signed_handle))

    return Transition(
        state=_to_preview(state, message=message),
        effects=tuple(effects),
    )


def _go_back(state: WizardState) -> Transition:
    if state.step is WizardStep.UPLOAD:
        return _ignore(state)

    if state.step is WizardStep.PREVIEW:
        # Upload holds no document, so stepping back discards it.
        return _reset(state)

    if state.step is WizardStep.SIGNING:
        return Transition(state=_to_preview(state))

    # Done -> Signing: the signed result belongs to Done only.
    return Transition(
        state=state.evolve(step=WizardStep.SIGNING, signed_handle=None),
        effects=(ReleaseHandle(handle=state.signed_handle),),
    )


def _activate_step(state: WizardState, index: int) -> Transition:
    if state.step is WizardStep.DONE:
        return _ignore(state)

    if index >= state.current_step_index:
        return _ignore(state)

    if index == 0:
        return _reset(state)

    return Transition(state=state.evolve(step=WizardStep.from_index(index)))
