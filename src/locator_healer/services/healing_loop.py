"""
Locator healing loop.

Drafting -> Validating -> {Converged | Retrying | Exhausted}

Round 0 sends every locator of the file to the repair oracle; each later round
sends only the keys that failed validation in the round before. Expressions
that validated are carried forward untouched. The file on disk is written once,
atomically, and only when every key validates.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from lxml import etree

from ..core.exceptions import ConvergenceExhaustedError, OracleCallError, OracleContractError
from ..core.logging_config import get_healing_logger
from ..core.models import HealingAttempt, HealingConfiguration, HealingResult, HealingStatus, LabelEvidence
from .locator_file import read_text, parse_locators, rewrite_locator_file
from .xpath_validator import XPathValidator

logger = logging.getLogger(__name__)


class LocatorHealingLoop:
    """Bounded repair/validate loop for one locator-definition file."""

    def __init__(self, oracle, config: Optional[HealingConfiguration] = None,
                 validator: Optional[XPathValidator] = None, run_id: Optional[str] = None):
        self.oracle = oracle
        self.config = config or HealingConfiguration()
        self.validator = validator or XPathValidator()
        self.run_id = run_id

    async def heal(self, locator_file: Union[str, Path], dom_html: str, evidence: Sequence[LabelEvidence],
                   field_labels: Optional[Sequence[str]] = None) -> HealingResult:
        """Heal every locator in ``locator_file`` against ``dom_html``.

        Raises:
            OracleContractError: The oracle reply broke the contract (file untouched)
            ConvergenceExhaustedError: Keys still invalid after ``max_retries`` rounds (file untouched)
        """
        healing_logger = get_healing_logger("loop", self.run_id)
        locator_file = str(locator_file)
        loop = asyncio.get_event_loop()

        content = await loop.run_in_executor(None, lambda: read_text(locator_file))
        working = parse_locators(content)
        if not working:
            healing_logger.info(f"No xpath locators declared in {locator_file}; nothing to heal")
            return HealingResult(status=HealingStatus.NOTHING_TO_HEAL, locator_file=locator_file)

        tree = await loop.run_in_executor(None, lambda: self.validator.parse(dom_html))
        labels = list(field_labels or [])
        attempts: List[HealingAttempt] = []
        requested = list(working.keys())
        start_time = time.time()

        healing_logger.log_operation_start("locator_healing", locator_file=locator_file,
                                           keys=len(working), max_retries=self.config.max_retries)

        for index in range(self.config.max_retries):
            subset = {key: working[key] for key in requested}
            oracle_failed = False

            # Drafting
            try:
                proposed = await self.oracle.repair_locators(subset, evidence, labels, retry=index > 0)
                working.update(proposed)
            except OracleCallError as e:
                oracle_failed = True
                healing_logger.warning(f"Round {index + 1}: oracle call failed, round consumed: {e}")
            except OracleContractError as e:
                healing_logger.log_operation_failure("locator_healing", time.time() - start_time, str(e),
                                                     error_code="ORACLE_CONTRACT", locator_file=locator_file)
                raise

            # Validating
            valid, invalid = self._validate(tree, working)
            attempt = HealingAttempt(
                index=index,
                requested_keys=tuple(requested),
                locators=dict(working),
                valid_keys=tuple(valid),
                invalid_keys=tuple(invalid),
                oracle_failed=oracle_failed,
            )
            attempts.append(attempt)

            if attempt.converged:
                await loop.run_in_executor(None, lambda: rewrite_locator_file(locator_file, working, labels))
                healing_logger.log_operation_success("locator_healing", time.time() - start_time,
                                                     locator_file=locator_file, attempts=len(attempts))
                return HealingResult(
                    status=HealingStatus.CONVERGED,
                    locator_file=locator_file,
                    healed_locators=dict(working),
                    attempts=attempts,
                    labels_written=labels,
                )

            # Retrying
            healing_logger.log_progress("locator_healing", (index + 1) / self.config.max_retries,
                                        f"still invalid after attempt {index + 1}: {', '.join(invalid)}")
            requested = list(invalid)

        # Exhausted
        error = ConvergenceExhaustedError(locator_file, attempts[-1].invalid_keys, len(attempts))
        healing_logger.log_operation_failure("locator_healing", time.time() - start_time, str(error),
                                             error_code="EXHAUSTED", locator_file=locator_file)
        raise error

    def _validate(self, tree: etree._Element, locators: Dict[str, str]):
        """Partition keys; expressions that cannot be written back count as invalid."""
        writable = {key: expression for key, expression in locators.items() if '"' not in expression}
        valid, _ = self.validator.partition(tree, writable)
        invalid = [key for key in locators if key not in valid]
        return valid, invalid
