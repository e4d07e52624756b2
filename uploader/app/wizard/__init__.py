from .state import Action, Activity, StepIndicator, WizardState, WizardStep
from .wizard import UploadWizard

__all__ = [
    "Action",
    "Activity",
    "StepIndicator",
    "WizardState",
    "WizardStep",
    "UploadWizard",
]
