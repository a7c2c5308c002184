"""Repair oracle: the text-generation service consulted for locator and label fixes."""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from crewai.llm import LLM
from langchain_ollama import OllamaLLM

from ..core.config import settings
from ..core.exceptions import OracleCallError, OracleContractError
from ..core.models import LabelEvidence
from .llm_output_cleaner import LLMOutputCleaner
from .prompts import (
    NO_MATCH_REPLY,
    PromptComponents,
    build_label_messages,
    build_repair_messages,
    load_best_practices,
)

logger = logging.getLogger(__name__)


def get_llm(model_provider: str, model_name: str, temperature: float = 0.2):
    """Get LLM instance based on provider and model name."""
    if model_provider == "local":
        return OllamaLLM(model=model_name, temperature=temperature)
    return LLM(
        api_key=settings.GEMINI_API_KEY,
        model=f"{model_name}",
        temperature=temperature,
        num_retries=5,
    )


class RepairOracle:
    """Async facade over a blocking LLM client.

    Every request runs in the default executor under ``asyncio.wait_for``; transport
    errors and timeouts surface as ``OracleCallError``. Reply-shape problems are the
    caller's concern, except for ``repair_locators`` which enforces the JSON contract.
    """

    def __init__(self, llm: Any = None, model_provider: Optional[str] = None,
                 model_name: Optional[str] = None, timeout: float = 120.0,
                 best_practices: Optional[str] = None):
        self.model_provider = model_provider or settings.MODEL_PROVIDER
        self.model_name = model_name or (
            settings.LOCAL_MODEL if self.model_provider == "local" else settings.ONLINE_MODEL)
        self._llm = llm
        self.timeout = timeout
        self.best_practices = best_practices or load_best_practices(settings.BEST_PRACTICES_PATH)

    @property
    def llm(self):
        if self._llm is None:
            logger.info(f"Initializing oracle LLM {self.model_provider}/{self.model_name}")
            self._llm = get_llm(self.model_provider, self.model_name, settings.LLM_TEMPERATURE)
        return self._llm

    def _call_sync(self, system: str, user: str) -> str:
        llm = self.llm
        if isinstance(llm, OllamaLLM):
            reply = llm.invoke(f"{system}\n\n{user}")
        else:
            reply = llm.call([
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ])
        return reply if isinstance(reply, str) else str(reply or "")

    async def complete(self, system: str, user: str) -> str:
        """Send one request and return the raw reply text.

        Raises:
            OracleCallError: On transport failure or timeout
        """
        loop = asyncio.get_event_loop()
        start = time.time()
        try:
            reply = await asyncio.wait_for(
                loop.run_in_executor(None, lambda: self._call_sync(system, user)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise OracleCallError(f"Oracle call timed out after {self.timeout}s") from e
        except Exception as e:
            raise OracleCallError(f"Oracle call failed: {e}") from e

        logger.debug(f"Oracle replied in {time.time() - start:.2f}s ({len(reply)} chars)")
        return reply.strip()

    async def repair_locators(self, locators: Mapping[str, str], evidence: Sequence[LabelEvidence],
                              field_labels: Optional[Iterable[str]] = None,
                              retry: bool = False) -> Dict[str, str]:
        """Ask for corrected expressions for exactly the given keys.

        Raises:
            OracleCallError: On transport failure or timeout
            OracleContractError: If the reply is not a JSON object with exactly the
                requested keys, each mapped to an ``xpath=`` string
        """
        system, user = build_repair_messages(locators, evidence, field_labels, self.best_practices, retry)
        reply = await self.complete(system, user)
        parsed = LLMOutputCleaner.parse_json_object(reply)
        return validate_repair_reply(parsed, locators.keys(), reply)

    async def extract_raw_locator(self, error_text: str) -> Optional[str]:
        """Raw XPath the error refers to, without ``locator()`` wrapper or ``xpath=`` tag."""
        reply = await self.complete(PromptComponents.EXTRACT_SYSTEM, error_text)
        return LLMOutputCleaner.extract_xpath(reply)

    async def suggest_label(self, label: str, detected_labels: List[str]) -> Optional[str]:
        """Replacement for a stale label, or None when the oracle reports no match."""
        system, user = build_label_messages(label, detected_labels)
        reply = LLMOutputCleaner.strip_code_fences(await self.complete(system, user)).strip().strip('"')
        if not reply or reply.lower() == NO_MATCH_REPLY:
            return None
        return reply


def validate_repair_reply(parsed: Dict[str, Any], requested_keys: Iterable[str], raw_reply: str = "") -> Dict[str, str]:
    """Enforce the repair reply contract on an already-parsed JSON object."""
    requested = list(requested_keys)
    missing = [key for key in requested if key not in parsed]
    extra = [key for key in parsed if key not in requested]
    if missing or extra:
        raise OracleContractError(
            f"Oracle reply keys do not match request (missing: {missing}, unexpected: {extra})",
            raw_reply=raw_reply)

    bad_values = [
        key for key in requested
        if not isinstance(parsed[key], str) or not parsed[key].startswith("xpath=")
    ]
    if bad_values:
        raise OracleContractError(
            f"Oracle reply values must be 'xpath=' strings (bad keys: {bad_values})", raw_reply=raw_reply)

    return {key: parsed[key] for key in requested}
