"""
Static resolution of a failing locator from a stack trace.

The resolver follows a fixed four-link chain through the page-object source:

1. frame      ``at <callee> (<pages/...page.ts>:<line>:<col>)``
2. member     ``this.<member>`` on the failing line
3. assignment ``this.<member> = [this.]page.locator(<Symbol>.<key>)`` between the
              constructor and the failing line
4. import     ``import <Symbol> from '<path>'`` or ``import * as <Symbol> from '<path>'``

Each link is a separate production, so a miss can be reported precisely as a
``StackResolutionFailure``. A missing link never falls back to guessing.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..core.models import LocatorReference, StackResolutionFailure

logger = logging.getLogger(__name__)


MEMBER_RE = re.compile(r"this\.(\w+)")
CONSTRUCTOR_MARKER = "constructor("
SCRIPT_EXTENSIONS = (".ts", ".js")


def _frame_pattern(page_object_suffix: str) -> re.Pattern:
    return re.compile(
        r"at [\w.<>\s]+ \((.*pages[\\/].*" + re.escape(page_object_suffix) + r"):(\d+):(\d+)\)"
    )


def _assignment_pattern(member: str) -> re.Pattern:
    return re.compile(
        r"this\." + re.escape(member) + r"\s*=\s*(?:this\.)?page\.locator\((\w+)\.([\w$]+)\)",
        re.IGNORECASE,
    )


def _import_patterns(symbol: str) -> List[re.Pattern]:
    name = re.escape(symbol)
    return [
        re.compile(r"import\s+" + name + r"\s+from\s+['\"](.*)['\"]"),
        re.compile(r"import\s+\*\s+as\s+" + name + r"\s+from\s+['\"](.*)['\"]"),
    ]


@dataclass
class StackResolution:
    """Outcome of a resolution attempt, with the first failing link when unresolved."""
    reference: Optional[LocatorReference] = None
    failure: Optional[StackResolutionFailure] = None
    page_file: Optional[str] = None
    line: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.reference is not None


class StackTraceResolver:
    """Resolves ``{locator_key, locator_file}`` from error text, never raising."""

    def __init__(self, project_root: Union[str, Path] = ".", page_object_suffix: str = ".page.ts",
                 default_extension: str = ".ts"):
        self.project_root = Path(project_root).resolve()
        self.default_extension = default_extension
        self._frame_re = _frame_pattern(page_object_suffix)

    def resolve(self, error_text: str) -> Optional[LocatorReference]:
        return self.diagnose(error_text).reference

    def diagnose(self, error_text: str) -> StackResolution:
        """Walk the chain and report either the reference or the first broken link."""
        frame = self._frame_re.search(error_text or "")
        if not frame:
            return StackResolution(failure=StackResolutionFailure.NO_PAGE_FRAME)

        raw_path = frame.group(1).strip()
        page_file = Path(raw_path) if os.path.isabs(raw_path) else self.project_root / raw_path
        line_number = int(frame.group(2))
        resolution = StackResolution(page_file=str(page_file), line=line_number)

        try:
            with open(page_file, "r", encoding="utf-8") as f:
                source = f.read().split("\n")
        except (OSError, UnicodeDecodeError):
            logger.debug(f"Page object file not readable: {page_file}")
            resolution.failure = StackResolutionFailure.PAGE_FILE_MISSING
            return resolution

        if line_number < 1 or line_number > len(source):
            resolution.failure = StackResolutionFailure.LINE_OUT_OF_RANGE
            return resolution

        member = MEMBER_RE.search(source[line_number - 1])
        if not member:
            resolution.failure = StackResolutionFailure.NO_MEMBER
            return resolution

        ctor_start = next((i for i, line in enumerate(source) if CONSTRUCTOR_MARKER in line), None)
        if ctor_start is None:
            resolution.failure = StackResolutionFailure.NO_CONSTRUCTOR
            return resolution

        assignment_re = _assignment_pattern(member.group(1))
        assignment = None
        for line in source[ctor_start:line_number]:
            assignment = assignment_re.search(line)
            if assignment:
                break
        if not assignment:
            resolution.failure = StackResolutionFailure.NO_ASSIGNMENT
            return resolution

        symbol, locator_key = assignment.group(1), assignment.group(2)
        import_path = self._find_import(source, symbol)
        if not import_path:
            resolution.failure = StackResolutionFailure.NO_IMPORT
            return resolution

        if not import_path.endswith(SCRIPT_EXTENSIONS):
            import_path += self.default_extension

        locator_path = os.path.normpath(os.path.join(page_file.parent, import_path))
        relative = os.path.relpath(locator_path, self.project_root).replace("\\", "/")

        resolution.reference = LocatorReference(locator_file=relative, locator_key=locator_key)
        logger.info(f"Resolved locator '{locator_key}' in {relative} from {page_file.name}:{line_number}")
        return resolution

    @staticmethod
    def _find_import(source: List[str], symbol: str) -> Optional[str]:
        patterns = _import_patterns(symbol)
        for line in source:
            for pattern in patterns:
                match = pattern.search(line)
                if match and match.group(1):
                    return match.group(1)
        return None
