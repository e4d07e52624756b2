"""
Wizard state: the single source of truth the presentation layer reads.

Instances are immutable. Every change goes through the reducer in
``transitions``, which builds a new state via :meth:`WizardState.evolve`
so the structural invariants are re-checked on every transition.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from uploader.app.schemas.files import Document


class WizardStep(str, Enum):
    UPLOAD = "upload"
    PREVIEW = "preview"
    SIGNING = "signing"
    DONE = "done"

    @property
    def position(self) -> int:
        return _STEP_ORDER.index(self)

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]

    @classmethod
    def from_index(cls, index: int) -> "WizardStep":
        return _STEP_ORDER[index]


_STEP_ORDER = (
    WizardStep.UPLOAD,
    WizardStep.PREVIEW,
    WizardStep.SIGNING,
    WizardStep.DONE,
)

_STEP_LABELS = {
    WizardStep.UPLOAD: "Upload",
    WizardStep.PREVIEW: "Preview",
    WizardStep.SIGNING: "Sign",
    WizardStep.DONE: "Done",
}


class Activity(str, Enum):
    VALIDATING = "validating"
    SIGNING = "signing"


_ACTIVITY_MESSAGES = {
    Activity.VALIDATING: "Validating document...",
    Activity.SIGNING: "Signing document...",
}


class Action(str, Enum):
    SELECT_FILE = "select-file"
    SIGN = "sign"
    REMOVE = "remove"
    BACK = "back"
    DOWNLOAD = "download"
    NEW_UPLOAD = "new-upload"


class StepIndicator(BaseModel):
    index: int
    label: str
    active: bool
    completed: bool
    disabled: bool

    model_config = ConfigDict(frozen=True)

    @property
    def clickable(self) -> bool:
        return self.completed and not self.disabled


class WizardState(BaseModel):
    """
    Invariants:
    - a document is held iff the step is past Upload
    - a preview handle exists iff a document is held
    - a signed handle exists iff the step is Done
    """

    step: WizardStep = WizardStep.UPLOAD
    document: Optional[Document] = None
    preview_handle: Optional[str] = None
    signed_handle: Optional[str] = None
    activity: Optional[Activity] = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_invariants(self) -> "WizardState":
        if (self.document is None) != (self.step is WizardStep.UPLOAD):
            raise ValueError("document must be held exactly when past Upload")
        if (self.preview_handle is None) != (self.document is None):
            raise ValueError("preview handle must accompany the document")
        if (self.signed_handle is None) != (self.step is not WizardStep.DONE):
            raise ValueError("signed handle must exist exactly in Done")
        return self

    def evolve(self, **changes) -> "WizardState":
        """Return a validated copy with ``changes`` applied."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self)(**values)

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.activity is not None

    @property
    def current_step_index(self) -> int:
        return self.step.position

    @property
    def can_go_back(self) -> bool:
        return self.step is not WizardStep.UPLOAD and not self.is_busy

    @property
    def activity_message(self) -> Optional[str]:
        if self.activity is None:
            return None
        return _ACTIVITY_MESSAGES[self.activity]

    @property
    def file_info(self) -> Optional[str]:
        if self.document is None:
            return None
        return (
            f"Selected File: {self.document.name} "
            f"({self.document.size_mb:.2f} MB)"
        )

    @property
    def download_name(self) -> Optional[str]:
        if self.step is not WizardStep.DONE:
            return None
        return self.document.download_name

    @property
    def available_actions(self) -> FrozenSet[Action]:
        if self.is_busy:
            return frozenset()

        actions = set()
        if self.step is WizardStep.UPLOAD:
            actions.add(Action.SELECT_FILE)
        elif self.step is WizardStep.PREVIEW:
            actions.update({Action.SIGN, Action.REMOVE})
        elif self.step is WizardStep.DONE:
            actions.update({Action.DOWNLOAD, Action.NEW_UPLOAD})

        if self.can_go_back:
            actions.add(Action.BACK)
        return frozenset(actions)

    def step_indicators(self) -> List[StepIndicator]:
        current = self.current_step_index
        finished = self.step is WizardStep.DONE

        return [
            StepIndicator(
                index=step.position,
                label=step.label,
                active=step.position == current,
                completed=step.position < current,
                disabled=finished and step.position < current,
            )
            for step in _STEP_ORDER
        ]
