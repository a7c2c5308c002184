"""
Resolution orchestrator.

Works out which locator-definition file caused a failure by trying an ordered
list of strategies, stopping at the first one that resolves:

1. ``static``        - stack-trace chain through the page object
2. ``oracle_search`` - oracle extracts the raw XPath, then the locator files are searched
3. ``step_mapping``  - last completed step -> next step's locator files

A strategy that raises is logged and counted as a miss. Every outcome is kept
in the trace so an unresolved run can still be diagnosed.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from ..core.exceptions import OracleCallError
from ..core.logging_config import get_healing_logger
from ..core.models import HealingConfiguration, LocatorReference, ResolutionOutcome, StrategyTrace
from .locator_search import search_locator_in_files
from .stack_trace_resolver import StackTraceResolver
from .step_mapper import FallbackStepMapper

logger = logging.getLogger(__name__)


@dataclass
class ResolutionEvidence:
    """Everything the strategies may look at for one failure."""
    error_text: str
    test_title: str = ""
    artifacts_dir: Optional[Union[str, Path]] = None


class ResolutionStrategy:
    """One way of turning failure evidence into a locator reference."""

    name = "base"

    async def resolve(self, evidence: ResolutionEvidence) -> Optional[LocatorReference]:
        raise NotImplementedError

    async def attempt(self, evidence: ResolutionEvidence) -> Tuple[Optional[LocatorReference], str]:
        """The reference (or None) together with the miss detail for the trace."""
        return await self.resolve(evidence), "not found"


class StaticStackStrategy(ResolutionStrategy):
    name = "static"

    def __init__(self, resolver: StackTraceResolver):
        self.resolver = resolver

    async def resolve(self, evidence: ResolutionEvidence) -> Optional[LocatorReference]:
        reference, _ = await self.attempt(evidence)
        return reference

    async def attempt(self, evidence: ResolutionEvidence) -> Tuple[Optional[LocatorReference], str]:
        loop = asyncio.get_event_loop()
        resolution = await loop.run_in_executor(None, lambda: self.resolver.diagnose(evidence.error_text))
        if resolution.failure is None:
            return resolution.reference, "not found"
        return resolution.reference, f"not found ({resolution.failure.value})"


class OracleSearchStrategy(ResolutionStrategy):
    name = "oracle_search"

    def __init__(self, oracle, locator_dir: Union[str, Path], project_root: Union[str, Path],
                 pattern: str = "**/*.ts"):
        self.oracle = oracle
        self.locator_dir = locator_dir
        self.project_root = project_root
        self.pattern = pattern

    async def resolve(self, evidence: ResolutionEvidence) -> Optional[LocatorReference]:
        try:
            expression = await self.oracle.extract_raw_locator(evidence.error_text)
        except OracleCallError as e:
            logger.warning(f"Raw locator extraction failed: {e}")
            return None
        if not expression:
            return None

        loop = asyncio.get_event_loop()
        found = await loop.run_in_executor(
            None, lambda: search_locator_in_files(expression, self.locator_dir, self.project_root, self.pattern))
        return LocatorReference(locator_file=found) if found else None


class StepMappingStrategy(ResolutionStrategy):
    name = "step_mapping"

    def __init__(self, mapper: FallbackStepMapper):
        self.mapper = mapper

    async def resolve(self, evidence: ResolutionEvidence) -> Optional[LocatorReference]:
        loop = asyncio.get_event_loop()
        candidates = await loop.run_in_executor(
            None, lambda: self.mapper.find_candidates(evidence.error_text, evidence.test_title,
                                                      evidence.artifacts_dir))
        return LocatorReference(locator_file=candidates[0]) if candidates else None


class ResolutionOrchestrator:
    """Runs the strategies in order; first success wins."""

    def __init__(self, strategies: Sequence[ResolutionStrategy], run_id: Optional[str] = None):
        self.strategies: List[ResolutionStrategy] = list(strategies)
        self.run_id = run_id

    @classmethod
    def default(cls, project_root: Union[str, Path], locator_dir: Union[str, Path], oracle=None,
                config: Optional[HealingConfiguration] = None, mapping_file: str = "locatorFinder.json",
                run_id: Optional[str] = None) -> 'ResolutionOrchestrator':
        """The standard static -> oracle_search -> step_mapping chain.

        Without an oracle the ``oracle_search`` strategy is left out.
        """
        config = config or HealingConfiguration()
        strategies: List[ResolutionStrategy] = [
            StaticStackStrategy(StackTraceResolver(project_root, config.page_object_suffix,
                                                   config.default_locator_extension)),
        ]
        if oracle is not None:
            strategies.append(OracleSearchStrategy(oracle, locator_dir, project_root, config.locator_file_glob))
        strategies.append(StepMappingStrategy(FallbackStepMapper(project_root, config, mapping_file)))
        return cls(strategies, run_id=run_id)

    async def resolve(self, evidence: ResolutionEvidence) -> ResolutionOutcome:
        healing_logger = get_healing_logger("resolution", self.run_id, evidence.test_title or None)
        outcome = ResolutionOutcome()

        for strategy in self.strategies:
            try:
                reference, miss_detail = await strategy.attempt(evidence)
            except Exception as e:
                healing_logger.exception(f"Strategy '{strategy.name}' raised: {e}")
                outcome.trace.append(StrategyTrace(strategy.name, False, f"error: {e}"))
                continue

            if reference is None:
                outcome.trace.append(StrategyTrace(strategy.name, False, miss_detail))
                healing_logger.log_strategy(strategy.name, False, miss_detail)
                continue

            detail = reference.locator_file
            if reference.locator_key:
                detail += f" (key: {reference.locator_key})"
            outcome.trace.append(StrategyTrace(strategy.name, True, detail))
            healing_logger.log_strategy(strategy.name, True, detail)
            outcome.locator_file = reference.locator_file
            outcome.locator_key = reference.locator_key
            outcome.strategy = strategy.name
            return outcome

        healing_logger.warning("Locator file unresolved by every strategy; healing will be skipped")
        return outcome
