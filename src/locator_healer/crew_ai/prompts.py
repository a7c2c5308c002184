"""
Prompt Components for the repair oracle.

Reusable prompt building blocks for the three oracle requests the pipeline makes:
locator repair, raw-locator extraction from an error, and field-label healing.

Usage:
    from .prompts import PromptComponents, build_repair_messages

    system, user = build_repair_messages(locators, evidence, labels, reference)
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.models import LabelEvidence

logger = logging.getLogger(__name__)


class PromptComponents:
    """
    Prompt text used by ``RepairOracle``.

    Components are organized into categories:
    - REPAIR: locator healing rounds
    - EXTRACTION: raw locator extraction from error output
    - LABELS: field label verification
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # REPAIR
    # ═══════════════════════════════════════════════════════════════════════════

    DEFAULT_XPATH_BEST_PRACTICES = """
- Prefer stable attributes: @id, @name, @title, @aria-label, @placeholder, @data-* .
- Skip generated ids (long digit runs, framework prefixes such as "pt1:_UI" that change per build).
- Anchor on visible text with normalize-space(): //button[normalize-space()='Save'].
- For inputs, locate the label first and navigate: //label[normalize-space()='User Name']/following::input[1].
- Use contains() only for text split across elements: //a[contains(normalize-space(),'Save')].
- Avoid absolute paths (/html/body/div[3]/...) and positional indexes where an attribute exists.
- Never use double quotes inside the expression; use single quotes for string literals.
""".strip()

    REPAIR_SYSTEM = """
You are an expert web automation engineer.
Your job: Review and repair a map of locators using current UI HTML and generic patterns.
NEVER give explanations. Only output a JSON object (not an array) that directly maps locator keys to healed XPath strings.
NEVER change keys or add new ones. Every value MUST start with "xpath=". Do NOT add or remove fields.
Refer to these best practices:
{best_practices}
""".strip()

    RETRY_CONTEXT = "The following locators failed DOM validation and need to be fixed again."

    REPAIR_USER = """
{context}
Here is the locator map (key-value of locator variable names to XPath strings in "xpath=..." format):
{locators}
Here is a sample of current UI HTML elements (DOM snapshot):
{evidence}
{field_labels}
If any XPath value is incorrect or outdated, repair it using best practices.
Your response MUST be a JSON object with the SAME KEYS and new XPath strings as values (in "xpath=..." format).
Return only the JSON object of fixed locators.
""".strip()

    FIELD_LABELS_LINE = "Field labels for this page/module are: {labels}. Use these field labels while healing the XPaths."

    # ═══════════════════════════════════════════════════════════════════════════
    # EXTRACTION
    # ═══════════════════════════════════════════════════════════════════════════

    EXTRACT_SYSTEM = (
        'Extract the raw XPath from this browser automation error. Do not return anything else, '
        'only the XPath inside waiting for locator("...").'
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # LABELS
    # ═══════════════════════════════════════════════════════════════════════════

    LABEL_SYSTEM = "You are a strict UI field label verifier. Never hallucinate."

    LABEL_USER = """
We are verifying if a UI field label from our test scripts is still valid.

Given:
- Original label: "{label}"
- A list of current extracted field labels from the latest UI.

Step 1:
Check if the original label is still present in the extracted labels with:
- Minor typos (e.g., "Invoce Number" -> "Invoice Number")
- Spacing issues (e.g., "SupplierName" -> "Supplier Name")
- Casing differences

Step 2:
If no exact match is found, also check for known semantic equivalences. For example:
- [User Name, usr, User ID, user]
- [Password, pwd, pass, passwd]
- [Sign In, Login]

If any of the extracted labels semantically match the original based on these equivalence groups, consider it a match.

Step 3:
If no match, then and only then suggest a likely rename (e.g., "Business Unit" -> "Operating Unit").

Do not guess or hallucinate.
If no match exists, reply with exactly: no match

Respond with:
- The corrected label if found
- Or just: no match

Extracted Labels:
{detected}
""".strip()


NO_MATCH_REPLY = "no match"


def load_best_practices(path: Optional[str]) -> str:
    """Best-practices reference text, from ``path`` when it exists."""
    if path:
        reference = Path(path)
        if reference.exists():
            try:
                return reference.read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.warning(f"Failed to read best practices from {reference}: {e}")
        else:
            logger.warning(f"Best practices file {reference} not found, using built-in reference")
    return PromptComponents.DEFAULT_XPATH_BEST_PRACTICES


def build_repair_messages(locators: Mapping[str, str], evidence: Sequence[LabelEvidence],
                          field_labels: Optional[Iterable[str]], best_practices: str,
                          retry: bool = False) -> Tuple[str, str]:
    """System and user prompt for one repair round."""
    labels = [label for label in (field_labels or []) if label]
    system = PromptComponents.REPAIR_SYSTEM.format(best_practices=best_practices)
    user = PromptComponents.REPAIR_USER.format(
        context=PromptComponents.RETRY_CONTEXT if retry else "",
        locators=json.dumps(dict(locators), indent=2),
        evidence=json.dumps([item.to_dict() for item in evidence], indent=2),
        field_labels=PromptComponents.FIELD_LABELS_LINE.format(labels=json.dumps(labels)) if labels else "",
    ).strip()
    return system, user


def build_label_messages(label: str, detected_labels: List[str]) -> Tuple[str, str]:
    detected = "\n".join(f"- {item}" for item in detected_labels)
    return PromptComponents.LABEL_SYSTEM, PromptComponents.LABEL_USER.format(label=label, detected=detected)
