"""Data models for the locator self-healing pipeline."""

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..exceptions import FailureDetailsError


XPATH_PREFIX = "xpath="

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_label(label: str) -> str:
    """Normalize a field label for comparison (trim, lower-case, collapse whitespace)."""
    return _WHITESPACE_RE.sub(" ", (label or "").strip()).lower()


class LocatorDialect(Enum):
    """Query dialects a locator expression can be tagged with."""
    XPATH = "xpath"
    UNKNOWN = "unknown"


class HealingStatus(Enum):
    """Outcome of a healing run that did not raise."""
    CONVERGED = "converged"
    NOTHING_TO_HEAL = "nothing_to_heal"
    SKIPPED = "skipped"


class StackResolutionFailure(Enum):
    """The first link of the stack-trace chain that could not be resolved."""
    NO_PAGE_FRAME = "no_page_frame"
    PAGE_FILE_MISSING = "page_file_missing"
    LINE_OUT_OF_RANGE = "line_out_of_range"
    NO_MEMBER = "no_member"
    NO_CONSTRUCTOR = "no_constructor"
    NO_ASSIGNMENT = "no_assignment"
    NO_IMPORT = "no_import"


@dataclass(frozen=True)
class LocatorDefinition:
    """A named locator expression declared in a locator-definition file."""
    file_path: str
    key: str
    expression: str

    @property
    def dialect(self) -> LocatorDialect:
        if self.expression.startswith(XPATH_PREFIX):
            return LocatorDialect.XPATH
        return LocatorDialect.UNKNOWN

    @property
    def query(self) -> str:
        """Expression without its dialect tag."""
        if self.dialect is LocatorDialect.XPATH:
            return self.expression[len(XPATH_PREFIX):]
        return self.expression


@dataclass(frozen=True)
class LocatorReference:
    """A resolved pointer to a locator file and, when known, the failing key."""
    locator_file: str
    locator_key: Optional[str] = None


@dataclass(frozen=True)
class FieldLabelSet:
    """Ordered, de-duplicated set of human-readable field labels."""
    labels: Tuple[str, ...] = ()

    @classmethod
    def from_iterable(cls, labels) -> 'FieldLabelSet':
        seen = set()
        ordered = []
        for label in labels:
            cleaned = (label or "").strip()
            if not cleaned:
                continue
            norm = normalize_label(cleaned)
            if norm in seen:
                continue
            seen.add(norm)
            ordered.append(cleaned)
        return cls(tuple(ordered))

    @classmethod
    def from_declaration(cls, raw: str) -> 'FieldLabelSet':
        """Build from a comma-separated declaration such as ``"User Name, Password"``."""
        return cls.from_iterable(raw.split(","))

    @property
    def normalized(self) -> List[str]:
        return [normalize_label(label) for label in self.labels]

    def __iter__(self):
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)


class StepMapping:
    """Static step -> candidate locator files mapping, in test-flow order.

    The mapping is read-only for the lifetime of a run.
    """

    def __init__(self, steps: Dict[str, List[str]], variants: Optional[Dict[str, Dict[str, List[str]]]] = None):
        self._steps = MappingProxyType({k: tuple(v) for k, v in steps.items()})
        self._variants = MappingProxyType({
            name: MappingProxyType({k: tuple(v) for k, v in mapping.items()})
            for name, mapping in (variants or {}).items()
        })

    @property
    def steps(self) -> Mapping[str, Tuple[str, ...]]:
        return self._steps

    def variant(self, name: str) -> Optional[Mapping[str, Tuple[str, ...]]]:
        return self._variants.get(name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_key: str = "stepToLocatorMapping") -> 'StepMapping':
        """Create a mapping from the parsed JSON configuration."""
        if not isinstance(data, dict):
            raise ValueError("Step mapping must be a JSON object")
        steps = data.get(default_key)
        if not isinstance(steps, dict):
            raise ValueError(f"Step mapping is missing the '{default_key}' object")
        variants = {
            name: value for name, value in data.items()
            if name != default_key and isinstance(value, dict)
        }
        for mapping in [steps, *variants.values()]:
            for step, files in mapping.items():
                if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
                    raise ValueError(f"Step '{step}' must map to a list of file paths")
        return cls(steps, variants)


# =================== FAILURE DETAILS (versioned schema) ===================

FAILURE_DETAILS_SCHEMA_VERSION = 1


@dataclass
class ErrorLocation:
    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class ErrorEntry:
    """One error reported by the test harness."""
    message: Optional[str] = None
    stack: Optional[str] = None
    location: Optional[ErrorLocation] = None
    snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorEntry':
        location = data.get("location")
        return cls(
            message=data.get("message"),
            stack=data.get("stack"),
            location=ErrorLocation(**location) if location else None,
            snippet=data.get("snippet"),
        )


@dataclass
class StepRecord:
    title: str
    error: Optional[ErrorEntry] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StepRecord':
        error = data.get("error")
        return cls(title=data.get("title", ""), error=ErrorEntry.from_dict(error) if error else None)


@dataclass
class TestResultRecord:
    """Errors and step errors of one test attempt."""
    __test__ = False  # not a pytest test class

    errors: List[ErrorEntry] = field(default_factory=list)
    error: Optional[ErrorEntry] = None
    steps: List[StepRecord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TestResultRecord':
        error = data.get("error")
        return cls(
            errors=[ErrorEntry.from_dict(e) for e in data.get("errors", [])],
            error=ErrorEntry.from_dict(error) if error else None,
            steps=[StepRecord.from_dict(s) for s in data.get("steps", [])],
        )


@dataclass
class Attachment:
    name: str
    content_type: str
    path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attachment':
        return cls(
            name=data["name"],
            content_type=data.get("content_type") or data.get("contentType", ""),
            path=data.get("path"),
        )


@dataclass
class FailureDetails:
    """Structured description of a failing test run."""
    errors: List[ErrorEntry] = field(default_factory=list)
    results: List[TestResultRecord] = field(default_factory=list)
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    schema_version: int = FAILURE_DETAILS_SCHEMA_VERSION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FailureDetails':
        """Create failure details from a dictionary payload.

        Raises:
            FailureDetailsError: If the payload declares an unsupported schema version
        """
        version = data.get("schema_version", FAILURE_DETAILS_SCHEMA_VERSION)
        if version != FAILURE_DETAILS_SCHEMA_VERSION:
            raise FailureDetailsError(f"Unsupported failure details schema version: {version}")
        return cls(
            errors=[ErrorEntry.from_dict(e) for e in data.get("errors", [])],
            results=[TestResultRecord.from_dict(r) for r in data.get("results", [])],
            stdout=list(data.get("stdout", [])),
            stderr=list(data.get("stderr", [])),
            attachments=[Attachment.from_dict(a) for a in data.get("attachments", [])],
            schema_version=version,
        )


# =================== UI EVIDENCE ===================

@dataclass
class EvidenceMatch:
    """A DOM element matching a label plus its structural context."""
    element_outer_html: str
    parent_outer_html: str = ""
    nearby_elements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "element_outer_html": self.element_outer_html,
            "parent_outer_html": self.parent_outer_html,
            "nearby_elements": self.nearby_elements,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvidenceMatch':
        return cls(
            element_outer_html=data.get("element_outer_html", ""),
            parent_outer_html=data.get("parent_outer_html", ""),
            nearby_elements=list(data.get("nearby_elements", [])),
        )


@dataclass
class LabelEvidence:
    label: str
    matches: List[EvidenceMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "matches": [m.to_dict() for m in self.matches]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LabelEvidence':
        return cls(
            label=data.get("label", ""),
            matches=[EvidenceMatch.from_dict(m) for m in data.get("matches", [])],
        )


# =================== HEALING ===================

@dataclass(frozen=True)
class HealingAttempt:
    """State of one healing round: what was asked for and how validation went."""
    index: int
    requested_keys: Tuple[str, ...]
    locators: Mapping[str, str]
    valid_keys: Tuple[str, ...] = ()
    invalid_keys: Tuple[str, ...] = ()
    oracle_failed: bool = False

    @property
    def converged(self) -> bool:
        return not self.invalid_keys


@dataclass
class HealingResult:
    """Result of a healing run that did not raise."""
    status: HealingStatus
    locator_file: str
    healed_locators: Dict[str, str] = field(default_factory=dict)
    attempts: List[HealingAttempt] = field(default_factory=list)
    labels_written: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "locator_file": self.locator_file,
            "healed_locators": self.healed_locators,
            "attempts": len(self.attempts),
            "labels_written": self.labels_written,
        }


# =================== RESOLUTION ===================

@dataclass
class StrategyTrace:
    """Diagnostic record of one resolution strategy."""
    strategy: str
    succeeded: bool
    detail: str = ""


@dataclass
class ResolutionOutcome:
    """Result of the resolution orchestrator; ``locator_file`` is None when unresolved."""
    locator_file: Optional[str] = None
    locator_key: Optional[str] = None
    strategy: Optional[str] = None
    trace: List[StrategyTrace] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.locator_file is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locator_file": self.locator_file,
            "locator_key": self.locator_key,
            "strategy": self.strategy,
            "trace": [
                {"strategy": t.strategy, "succeeded": t.succeeded, "detail": t.detail}
                for t in self.trace
            ],
        }


@dataclass
class HealingConfiguration:
    """Configuration settings for the locator healing pipeline."""
    enabled: bool = True
    max_retries: int = 4
    oracle_timeout: float = 120.0

    # Evidence collection
    prefix_match_labels: List[str] = field(default_factory=lambda: ["save"])
    evidence_tags: List[str] = field(default_factory=lambda: [
        "input", "textarea", "button", "label", "a", "span"
    ])
    next_elements_count: int = 3

    # Label healing
    protected_labels: List[str] = field(default_factory=list)

    # Step mapping
    validation_test_marker: str = "Home Page validation"
    validation_mapping_key: str = "homePageValidationTest"
    default_mapping_key: str = "stepToLocatorMapping"

    # Source layout of the UI test project
    page_object_suffix: str = ".page.ts"
    locator_file_glob: str = "**/*.ts"
    default_locator_extension: str = ".ts"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "enabled": self.enabled,
            "max_retries": self.max_retries,
            "oracle_timeout": self.oracle_timeout,
            "prefix_match_labels": list(self.prefix_match_labels),
            "evidence_tags": list(self.evidence_tags),
            "next_elements_count": self.next_elements_count,
            "protected_labels": list(self.protected_labels),
            "validation_test_marker": self.validation_test_marker,
            "validation_mapping_key": self.validation_mapping_key,
            "default_mapping_key": self.default_mapping_key,
            "page_object_suffix": self.page_object_suffix,
            "locator_file_glob": self.locator_file_glob,
            "default_locator_extension": self.default_locator_extension,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingConfiguration':
        """Create configuration from dictionary."""
        return cls(**data)
