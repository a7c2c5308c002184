"""
LLM Output Cleaner - parsing of repair-oracle replies.

Oracles are asked for bare JSON or a bare XPath, but frequently wrap the answer
in Markdown code fences or a ``locator('...')`` call. This module strips those
wrappers before the reply is parsed. Anything that still fails to parse is a
contract violation and is reported as ``OracleContractError``.
"""

import json
import re
import logging
from typing import Any, Dict, Optional

from ..core.exceptions import OracleContractError
from ..core.models import XPATH_PREFIX

logger = logging.getLogger(__name__)


class LLMOutputCleaner:
    """
    Cleans and parses raw oracle replies.

    All methods are static; the class only groups the patterns together.
    """

    # ```json ... ``` or ``` ... ``` around the whole reply
    LEADING_FENCE = re.compile(r'^```[a-zA-Z]*\s*')
    TRAILING_FENCE = re.compile(r'\s*```$')

    # locator('//div') / locator("//div")
    LOCATOR_CALL = re.compile(r'locator\(\s*[\'"](.+?)[\'"]\s*\)')

    @staticmethod
    def strip_code_fences(text: str) -> str:
        """
        Remove surrounding Markdown code fences.

        Examples:
            Input:  "```json\\n{\\"a\\": \\"xpath=//a\\"}\\n```"
            Output: '{"a": "xpath=//a"}'
        """
        if not isinstance(text, str):
            return text

        cleaned = text.strip()
        cleaned = LLMOutputCleaner.LEADING_FENCE.sub('', cleaned)
        cleaned = LLMOutputCleaner.TRAILING_FENCE.sub('', cleaned)
        return cleaned.strip()

    @staticmethod
    def parse_json_object(text: str) -> Dict[str, Any]:
        """
        Parse a reply that must be a single JSON object.

        Raises:
            OracleContractError: If the reply is not JSON or not an object
        """
        cleaned = LLMOutputCleaner.strip_code_fences(text or "")
        was_cleaned = cleaned != (text or "").strip()

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            formatting_monitor.log_response(was_cleaned=was_cleaned, violated=True)
            raise OracleContractError(f"Oracle reply is not valid JSON: {e}", raw_reply=text or "") from e

        if not isinstance(parsed, dict):
            formatting_monitor.log_response(was_cleaned=was_cleaned, violated=True)
            raise OracleContractError(
                f"Oracle reply must be a JSON object, got {type(parsed).__name__}", raw_reply=text or "")

        formatting_monitor.log_response(was_cleaned=was_cleaned)
        if was_cleaned:
            logger.debug("Stripped code fences from oracle reply")
        return parsed

    @staticmethod
    def extract_xpath(text: str) -> Optional[str]:
        """
        Pull a bare XPath out of a raw-locator reply.

        Tolerates code fences, a ``locator('...')`` wrapper and an ``xpath=`` tag.
        Returns None for an empty reply.
        """
        cleaned = LLMOutputCleaner.strip_code_fences(text or "").strip().strip('`').strip()
        if not cleaned:
            return None

        if cleaned.startswith('locator('):
            match = LLMOutputCleaner.LOCATOR_CALL.search(cleaned)
            if not match:
                return None
            cleaned = match.group(1)

        if cleaned.startswith(XPATH_PREFIX):
            cleaned = cleaned[len(XPATH_PREFIX):]

        return cleaned.strip() or None


class LLMFormattingMonitor:
    """
    Track how often oracle replies needed cleaning or broke the reply contract.
    """

    def __init__(self):
        self.total_responses = 0
        self.cleaned_responses = 0
        self.contract_violations = 0

    def log_response(self, was_cleaned: bool = False, violated: bool = False):
        """Log a parsed (or unparseable) oracle response."""
        self.total_responses += 1
        if was_cleaned:
            self.cleaned_responses += 1
        if violated:
            self.contract_violations += 1

    def get_stats(self) -> str:
        """Get formatted statistics string."""
        if self.total_responses == 0:
            return "No oracle responses processed yet"

        clean_rate = (self.cleaned_responses / self.total_responses) * 100
        return (
            f"Oracle Responses: {self.total_responses} total, "
            f"{self.cleaned_responses} cleaned ({clean_rate:.1f}%), "
            f"{self.contract_violations} contract violations"
        )


# Global monitor instance
formatting_monitor = LLMFormattingMonitor()
