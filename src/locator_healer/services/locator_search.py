"""Search of the locator directory for a raw XPath expression."""

import logging
import re
from pathlib import Path
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)


QUOTED_XPATH_RE = re.compile(r'"xpath=([^"]+)"')


def iter_locator_files(locator_dir: Union[str, Path], pattern: str = "**/*.ts") -> Iterator[Path]:
    """Locator files under ``locator_dir`` in a stable (sorted) order."""
    root = Path(locator_dir)
    if not root.is_dir():
        logger.warning(f"Locator directory {root} does not exist")
        return iter(())
    return iter(sorted(path for path in root.glob(pattern) if path.is_file()))


def search_locator_in_files(expression: str, locator_dir: Union[str, Path], project_root: Union[str, Path],
                            pattern: str = "**/*.ts") -> Optional[str]:
    """First locator file containing ``"xpath=<expression>"`` exactly.

    Returns the path relative to ``project_root`` with forward slashes, or None.
    """
    if not expression:
        return None

    root = Path(project_root).resolve()
    files = list(iter_locator_files(locator_dir, pattern))
    logger.info(f"Searching {len(files)} locator file(s) for {expression!r}")

    for path in files:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Skipping unreadable locator file {path}: {e}")
            continue
        if any(match.group(1) == expression for match in QUOTED_XPATH_RE.finditer(content)):
            resolved = path.resolve()
            try:
                relative = resolved.relative_to(root).as_posix()
            except ValueError:
                relative = resolved.as_posix()
            logger.info(f"Found locator in {relative}")
            return relative

    logger.info("No locator file contains the extracted expression")
    return None
