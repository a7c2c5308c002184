"""Core data models for the locator self-healing pipeline."""

from .healing_models import (
    XPATH_PREFIX,
    normalize_label,
    LocatorDialect,
    HealingStatus,
    StackResolutionFailure,
    LocatorDefinition,
    LocatorReference,
    FieldLabelSet,
    StepMapping,
    ErrorLocation,
    ErrorEntry,
    StepRecord,
    TestResultRecord,
    Attachment,
    FailureDetails,
    EvidenceMatch,
    LabelEvidence,
    HealingAttempt,
    HealingResult,
    StrategyTrace,
    ResolutionOutcome,
    HealingConfiguration,
)

__all__ = [
    "XPATH_PREFIX",
    "normalize_label",
    "LocatorDialect",
    "HealingStatus",
    "StackResolutionFailure",
    "LocatorDefinition",
    "LocatorReference",
    "FieldLabelSet",
    "StepMapping",
    "ErrorLocation",
    "ErrorEntry",
    "StepRecord",
    "TestResultRecord",
    "Attachment",
    "FailureDetails",
    "EvidenceMatch",
    "LabelEvidence",
    "HealingAttempt",
    "HealingResult",
    "StrategyTrace",
    "ResolutionOutcome",
    "HealingConfiguration",
]
