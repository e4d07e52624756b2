"""
Upload wizard controller.

Each user action follows the same shape:

    event -> synchronous guard (reducer) -> async operation
          -> result variant -> synchronous transition (reducer)

State is only ever replaced with what the reducer returns, so the
controller can be driven without a live network or UI.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from uploader.app.collaborators.handles import PreviewHandleProvider
from uploader.app.collaborators.history import HistorySink
from uploader.app.collaborators.notifications import NotificationSink
from uploader.app.schemas.files import Document, SelectedFile
from uploader.app.schemas.outcomes import (
    Accepted,
    FailureCause,
    Rejected,
    RejectionReason,
    Signed,
    SigningFailed,
    SigningResult,
    ValidationOutcome,
)
from uploader.app.signing_client import SigningClient
from uploader.app.validation import PdfValidator
from uploader.app.wizard.state import WizardState
from uploader.app.wizard.transitions import (
    BackRequested,
    DropRejected,
    Effect,
    NewUploadRequested,
    Notify,
    RecordHistory,
    ReleaseHandle,
    RemoveRequested,
    ResetRequested,
    SigningFinished,
    SigningStarted,
    StepActivated,
    TeardownRequested,
    ValidationFinished,
    ValidationStarted,
    WizardEvent,
    reduce,
)

logger = logging.getLogger("uploader.wizard")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadWizard:
    """
    Drives upload -> preview -> signing -> done.

    At most one validation or signing operation is in flight; actions
    arriving meanwhile are dropped, not queued.
    """

    def __init__(
        self,
        *,
        validator: PdfValidator,
        signing_client: SigningClient,
        notifier: NotificationSink,
        handles: PreviewHandleProvider,
        history: Optional[HistorySink] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._validator = validator
        self._signing_client = signing_client
        self._notifier = notifier
        self._handles = handles
        self._history = history
        self._clock = clock
        self._state = WizardState()

    @property
    def state(self) -> WizardState:
        return self._state

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event: WizardEvent) -> bool:
        transition = reduce(self._state, event)
        self._state = transition.state

        if not transition.accepted:
            logger.debug(
                "wizard_event_ignored",
                extra={
                    "event": type(event).__name__,
                    "step": self._state.step.value,
                    "busy": self._state.is_busy,
                },
            )

        for effect in transition.effects:
            self._apply(effect)

        return transition.accepted

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, Notify):
            self._notifier.notify(effect.severity, effect.message)
        elif isinstance(effect, ReleaseHandle):
            self._handles.release_handle(effect.handle)
        elif isinstance(effect, RecordHistory):
            if self._history is not None:
                handle = self._handles.create_handle(effect.content)
                self._history.record(effect.name, self._clock(), handle)

    # ------------------------------------------------------------------
    # File selection
    # ------------------------------------------------------------------

    async def select_file(self, file: SelectedFile) -> WizardState:
        """
        Replace whatever is held with ``file`` if it validates.
        """
        if self._state.is_busy:
            logger.debug("select_file_ignored_while_busy")
            return self._state

        # Never let handles from a previous selection outlive it.
        self._dispatch(ResetRequested())
        self._dispatch(ValidationStarted())

        document: Optional[Document] = None
        preview_handle: Optional[str] = None

        try:
            outcome: ValidationOutcome = await self._validator.validate(file)
            if isinstance(outcome, Accepted):
                content = await file.read()
                document = Document(
                    name=file.name,
                    media_type=file.media_type,
                    size=file.size,
                    content=content,
                )
                preview_handle = self._handles.create_handle(content)
        except Exception as exc:
            logger.exception(
                "validation_crashed",
                extra={"file_name": file.name},
            )
            outcome = Rejected(reason=RejectionReason.UNREADABLE, detail=str(exc))
            document = None

        self._dispatch(
            ValidationFinished(
                outcome=outcome,
                document=document,
                preview_handle=preview_handle,
            )
        )
        return self._state

    async def drop_files(self, files: Sequence[SelectedFile]) -> WizardState:
        """
        Drop-zone entry point: exactly one file passing the cheap
        type/size pre-filter goes on to full validation.
        """
        if self._state.is_busy:
            logger.debug("drop_ignored_while_busy")
            return self._state

        settings = self._validator.settings
        if len(files) != 1 or not isinstance(
            self._validator.prefilter(files[0]),
            Accepted,
        ):
            self._dispatch(DropRejected(limit_mb=settings.max_file_size_mb))
            return self._state

        return await self.select_file(files[0])

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    async def sign(self) -> WizardState:
        """
        One call, at most one network attempt. Ignored unless at Preview
        and idle.
        """
        if not self._dispatch(SigningStarted()):
            return self._state

        document = self._state.document

        try:
            result: SigningResult = await self._signing_client.sign(document)
        except Exception as exc:
            logger.exception("signing_client_crashed")
            result = SigningFailed(cause=FailureCause.SERVER_ERROR, detail=str(exc))

        signed_handle = None
        if isinstance(result, Signed):
            signed_handle = self._handles.create_handle(result.content)
        else:
            logger.warning(
                "signing_failed",
                extra={
                    "cause": result.cause.value,
                    "status_code": result.status_code,
                },
            )

        self._dispatch(SigningFinished(result=result, signed_handle=signed_handle))
        return self._state

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_back(self) -> WizardState:
        self._dispatch(BackRequested())
        return self._state

    def activate_step(self, index: int) -> WizardState:
        self._dispatch(StepActivated(index=index))
        return self._state

    def remove_file(self) -> WizardState:
        self._dispatch(RemoveRequested())
        return self._state

    def start_new_upload(self) -> WizardState:
        self._dispatch(NewUploadRequested())
        return self._state

    def reset(self) -> WizardState:
        self._dispatch(ResetRequested())
        return self._state

    def close(self) -> None:
        """
        Teardown: release every live handle regardless of busy state.
        """
        self._dispatch(TeardownRequested())
