"""
Fallback step mapper.

Works out which step a test was executing when it failed, from the ``- Step ...``
lines in the error text, and maps the step after the last completed one to its
candidate locator files using the static step mapping.
"""

import json
import logging
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from ..core.models import HealingConfiguration, StepMapping
from .disambiguator import pick_best_candidate
from .locator_file import build_label_index

logger = logging.getLogger(__name__)


STEP_LINE_PREFIX = "- Step "
STEP_NAME_PREFIX = "Step "
FIELD_LABELS_FILE = "field-labels.md"


def parse_completed_steps(error_text: str) -> List[str]:
    """Step names from ``- Step <name> (...)`` lines, first-seen order, no duplicates."""
    steps: List[str] = []
    for line in (error_text or "").split("\n"):
        stripped = line.strip()
        if not stripped.startswith(STEP_LINE_PREFIX):
            continue
        idx = stripped.find("(")
        if idx == -1:
            continue
        name = stripped[2:idx].strip()
        if name and name not in steps:
            steps.append(name)
    return steps


def read_field_labels_md(md_path: Union[str, Path]) -> List[str]:
    """Labels from a saved ``field-labels.md`` file; empty when missing or unreadable."""
    path = Path(md_path)
    if not path.exists():
        return []
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read field labels from {path}: {e}")
        return []

    labels: List[str] = []
    for line in content.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith("-") or trimmed.startswith("*"):
            labels.append(trimmed[1:].strip())
        elif trimmed and not trimmed.startswith("#"):
            labels.extend(part.strip() for part in trimmed.split(","))
    return [label for label in labels if label]


def _find_step_index(step_keys: Sequence[str], step: str) -> int:
    """Index of ``step`` in the mapping keys, or -1.

    Tries the exact name, then the name without its ``Step `` prefix, then a
    case-insensitive comparison of both forms.
    """
    if step in step_keys:
        return step_keys.index(step)

    bare = step[len(STEP_NAME_PREFIX):].strip() if step.startswith(STEP_NAME_PREFIX) else step
    if bare in step_keys:
        return step_keys.index(bare)

    wanted = {step.lower(), bare.lower()}
    for i, key in enumerate(step_keys):
        if key.lower() in wanted:
            return i
    return -1


class FallbackStepMapper:
    """Maps the failing step to candidate locator files."""

    def __init__(self, base_path: Union[str, Path], config: Optional[HealingConfiguration] = None,
                 mapping_file: str = "locatorFinder.json"):
        self.base_path = Path(base_path)
        self.config = config or HealingConfiguration()
        self.mapping_path = self.base_path / mapping_file
        self._mapping: Optional[StepMapping] = None
        self._mapping_loaded = False

    @property
    def mapping(self) -> Optional[StepMapping]:
        """The step mapping, loaded once; None when missing or malformed."""
        if not self._mapping_loaded:
            self._mapping = self._load_mapping()
            self._mapping_loaded = True
        return self._mapping

    def _load_mapping(self) -> Optional[StepMapping]:
        if not self.mapping_path.exists():
            logger.error(f"Step mapping not found at {self.mapping_path}")
            return None
        try:
            with open(self.mapping_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return StepMapping.from_dict(data, default_key=self.config.default_mapping_key)
        except (OSError, json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to load step mapping from {self.mapping_path}: {e}")
            return None

    def select_steps(self, test_title: str) -> Optional[Mapping[str, Tuple[str, ...]]]:
        """The mapping variant to use for a test title."""
        mapping = self.mapping
        if mapping is None:
            return None
        if self.config.validation_test_marker and self.config.validation_test_marker in (test_title or ""):
            variant = mapping.variant(self.config.validation_mapping_key)
            if variant is not None:
                logger.info(f"Using '{self.config.validation_mapping_key}' step mapping for '{test_title}'")
                return variant
        return mapping.steps

    def find_failing_step(self, error_text: str, test_title: str) -> Optional[str]:
        """The mapping key after the last completed step, or None if it cannot be determined."""
        steps = self.select_steps(test_title)
        if not steps:
            return None

        completed = parse_completed_steps(error_text)
        if not completed:
            logger.warning("No completed steps found in error text")
            return None

        last_step = completed[-1]
        step_keys = list(steps.keys())
        last_index = _find_step_index(step_keys, last_step)
        if last_index == -1:
            logger.warning(f"Last completed step '{last_step}' not found in step mapping")
            return None
        if last_index + 1 >= len(step_keys):
            logger.warning(f"No step follows '{last_step}' in step mapping")
            return None

        failing_step = step_keys[last_index + 1]
        logger.info(f"Last completed step '{last_step}', presumed failing step '{failing_step}'")
        return failing_step

    def find_candidates(self, error_text: str, test_title: str,
                        artifacts_dir: Union[str, Path, None] = None) -> List[str]:
        """Candidate locator files for the failing step, disambiguated to one when possible."""
        failing_step = self.find_failing_step(error_text, test_title)
        if failing_step is None:
            return []

        candidates = list(self.select_steps(test_title)[failing_step])
        if len(candidates) <= 1:
            return candidates

        page_labels: List[str] = []
        if artifacts_dir is not None:
            page_labels = read_field_labels_md(Path(artifacts_dir) / FIELD_LABELS_FILE)
        label_index = build_label_index(candidates, self.base_path)
        best = pick_best_candidate(candidates, page_labels, label_index)
        return [best] if best else candidates
