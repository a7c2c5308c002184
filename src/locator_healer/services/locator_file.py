"""Reading and rewriting locator-definition files.

A locator-definition file is plain source text containing lines such as::

    submitBtn: "xpath=//button[@id='submit']",
    fieldlabels: "User Name, Password",

Only the quoted expressions and the quoted label list are ever rewritten; every
other byte of the file is preserved.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..core.exceptions import LocatorFileError
from ..core.models import FieldLabelSet, LocatorDefinition

logger = logging.getLogger(__name__)


PathLike = Union[str, Path]

LOCATOR_LINE_RE = re.compile(r'^\s*(\w+)\s*:\s*"(xpath=[^"]*)"', re.MULTILINE)
FIELD_LABELS_RE = re.compile(r'(?:fieldlabels|feildlabels)\s*:\s*[\'"]([^\'"]+)[\'"]', re.IGNORECASE)
FIELD_LABELS_REWRITE_RE = re.compile(r'(f(?:ie|ei)ldlabels\s*:\s*[\'"])[^\'"]*([\'"])', re.IGNORECASE)


def read_text(path: PathLike) -> str:
    """Read a locator file without newline translation."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise LocatorFileError(f"Cannot read locator file {path}: {e}") from e


def parse_locators(content: str) -> Dict[str, str]:
    """All ``key: "xpath=..."`` pairs, in file order. A repeated key keeps its last value."""
    return {match.group(1): match.group(2) for match in LOCATOR_LINE_RE.finditer(content)}


def parse_definitions(content: str, file_path: str) -> List[LocatorDefinition]:
    return [
        LocatorDefinition(file_path=file_path, key=key, expression=expression)
        for key, expression in parse_locators(content).items()
    ]


def parse_field_labels(content: str) -> FieldLabelSet:
    """The declared field labels of a file, empty when there is no declaration."""
    match = FIELD_LABELS_RE.search(content)
    if not match:
        return FieldLabelSet()
    return FieldLabelSet.from_declaration(match.group(1))


def load_definitions(path: PathLike) -> List[LocatorDefinition]:
    return parse_definitions(read_text(path), str(path))


def load_locators(path: PathLike) -> Dict[str, str]:
    return {definition.key: definition.expression for definition in load_definitions(path)}


def build_label_index(locator_files: Sequence[str], base_path: PathLike) -> Dict[str, FieldLabelSet]:
    """Declared label set for every candidate file.

    Files that are missing or unreadable get an empty set; this never raises.
    """
    index: Dict[str, FieldLabelSet] = {}
    base = Path(base_path)

    for locator_file in locator_files:
        full_path = base / locator_file
        if not full_path.exists():
            logger.warning(f"Locator file {locator_file} not found under {base}")
            index[locator_file] = FieldLabelSet()
            continue
        try:
            index[locator_file] = parse_field_labels(read_text(full_path))
        except LocatorFileError as e:
            logger.warning(f"Failed to extract labels from {locator_file}: {e}")
            index[locator_file] = FieldLabelSet()

    return index


def render_locators(content: str, locators: Mapping[str, str],
                    field_labels: Optional[Iterable[str]] = None) -> str:
    """Return ``content`` with the quoted expression of each key replaced.

    Keys that do not appear in the content are ignored. When ``field_labels`` is
    non-empty the first quoted label declaration is replaced as well.
    """
    for key, expression in locators.items():
        if '"' in expression:
            raise LocatorFileError(f"Expression for '{key}' contains a double quote and cannot be written back")
        pattern = re.compile(r'^(\s*' + re.escape(key) + r'\s*:\s*")xpath=[^"]*(")', re.MULTILINE)
        content = pattern.sub(lambda m, expr=expression: m.group(1) + expr + m.group(2), content, count=1)

    labels = [label for label in (field_labels or []) if label]
    if labels:
        joined = ",".join(labels)
        content = FIELD_LABELS_REWRITE_RE.sub(lambda m: m.group(1) + joined + m.group(2), content, count=1)

    return content


def atomic_write(path: PathLike, content: str) -> None:
    """Replace ``path`` with ``content`` via a temp file in the same directory."""
    target = Path(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(tmp_path, target)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise LocatorFileError(f"Failed to write locator file {path}: {e}") from e


def rewrite_locator_file(path: PathLike, locators: Mapping[str, str],
                         field_labels: Optional[Iterable[str]] = None) -> str:
    """Rewrite healed expressions (and labels) into the file in one atomic write."""
    original = read_text(path)
    updated = render_locators(original, locators, field_labels)
    if updated != original:
        atomic_write(path, updated)
        logger.info(f"Rewrote {len(locators)} locator(s) in {path}")
    else:
        logger.info(f"Locator file {path} already up to date")
    return updated
