"""Rendering of a failing test's details into the ``full-error.txt`` text."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from ..core.exceptions import FailureDetailsError
from ..core.models import ErrorEntry, FailureDetails

logger = logging.getLogger(__name__)


NO_DETAILS = "No error details available"
TRACE_HINT = '  To open trace: npx playwright show-trace "{path}"'


def _describe_error(header: str, error: ErrorEntry, include_snippet: bool = True) -> str:
    text = f"\n=== {header} ===\n"
    text += f"Message:\n{error.message or 'N/A'}\n\n"
    if error.stack and error.stack != error.message:
        text += f"Stack Trace:\n{error.stack}\n\n"
    if error.location:
        text += f"Location: {error.location}\n\n"
    if include_snippet and error.snippet:
        text += f"Code Snippet:\n{error.snippet}\n\n"
    return text


def render_failure_details(details: FailureDetails) -> str:
    """Human-readable error report, section by section."""
    sections: List[str] = []

    for idx, error in enumerate(details.errors, 1):
        sections.append(f"=== Basic Error {idx} ===\nMessage: {error.message}\nStack: {error.stack or 'N/A'}")

    for r_idx, result in enumerate(details.results, 1):
        for e_idx, error in enumerate(result.errors, 1):
            sections.append(_describe_error(f"Detailed Error {r_idx}.{e_idx}", error))
        if result.error:
            sections.append(_describe_error(f"Result Error {r_idx}", result.error, include_snippet=False))
        for s_idx, step in enumerate(result.steps, 1):
            if step.error:
                sections.append(_describe_error(f'Step Error {r_idx}.{s_idx}: "{step.title}"', step.error))

    if details.stdout:
        sections.append("\n=== STDOUT ===\n" + "\n".join(details.stdout) + "\n")
    if details.stderr:
        sections.append("\n=== STDERR ===\n" + "\n".join(details.stderr) + "\n")

    if details.attachments:
        lines = ["\n=== Attachments ==="]
        for attachment in details.attachments:
            lines.append(f"- {attachment.name} ({attachment.content_type}) at {attachment.path or 'in-memory'}")
            if "trace" in attachment.name and attachment.path:
                lines.append(TRACE_HINT.format(path=attachment.path))
        sections.append("\n".join(lines) + "\n")

    if not sections:
        return NO_DETAILS
    return "\n".join(sections)


def load_failure_details(path: Union[str, Path]) -> FailureDetails:
    """Read a failure-details JSON payload.

    Raises:
        FailureDetailsError: If the file is unreadable, not JSON, or of an unknown schema version
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FailureDetailsError(f"Cannot read failure details from {path}: {e}") from e
    if not isinstance(data, dict):
        raise FailureDetailsError(f"Failure details in {path} must be a JSON object")
    try:
        return FailureDetails.from_dict(data)
    except (KeyError, TypeError) as e:
        raise FailureDetailsError(f"Malformed failure details in {path}: {e}") from e


def details_from_text(error_text: str, title: Optional[str] = None) -> FailureDetails:
    """Wrap plain error output (e.g. a saved log) as a single basic error."""
    if not error_text.strip():
        return FailureDetails()
    return FailureDetails(errors=[ErrorEntry(message=title or "Test failed", stack=error_text)])
