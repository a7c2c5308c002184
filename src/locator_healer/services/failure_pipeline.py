"""
Failure pipeline: the after-test hook.

For a failed test it writes the diagnostic artifacts, resolves the locator file
responsible, heals its field labels and then its locators. Every artifact is
written before healing starts, so an unresolved or failed run still leaves
everything a human needs to intervene.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.config import settings
from ..core.exceptions import LocatorFileError
from ..core.logging_config import get_healing_logger
from ..core.models import (
    FailureDetails,
    HealingConfiguration,
    HealingResult,
    HealingStatus,
    LabelEvidence,
    ResolutionOutcome,
)
from . import label_extractor, page_capture
from .evidence_collector import UIEvidenceCollector
from .failure_details import render_failure_details
from .healing_loop import LocatorHealingLoop
from .label_healer import LabelHealer
from .locator_file import parse_field_labels, read_text
from .resolution_orchestrator import ResolutionEvidence, ResolutionOrchestrator
from .step_mapper import read_field_labels_md

logger = logging.getLogger(__name__)


FAILED_STATUSES = ("failed", "timedOut")


@dataclass
class PipelineReport:
    """What one pipeline run did."""
    artifacts_dir: Optional[str] = None
    resolution: ResolutionOutcome = field(default_factory=ResolutionOutcome)
    healing: Optional[HealingResult] = None
    page_labels: List[str] = field(default_factory=list)
    field_labels: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifacts_dir": self.artifacts_dir,
            "resolution": self.resolution.to_dict(),
            "healing": self.healing.to_dict() if self.healing else None,
            "page_labels": len(self.page_labels),
            "field_labels": self.field_labels,
            "skipped_reason": self.skipped_reason,
        }


class FailurePipeline:
    """Artifacts, resolution and healing for one failing test."""

    def __init__(self, oracle=None, config: Optional[HealingConfiguration] = None,
                 project_root: Union[str, Path, None] = None, locator_dir: Optional[str] = None,
                 artifacts_root: Union[str, Path, None] = None, mapping_file: Optional[str] = None):
        self.oracle = oracle
        self.config = config or HealingConfiguration()
        self.project_root = Path(project_root or settings.PROJECT_ROOT).resolve()
        self.locator_dir = self.project_root / (locator_dir or settings.LOCATOR_DIR)
        self.artifacts_root = Path(artifacts_root or settings.ARTIFACTS_ROOT)
        self.mapping_file = mapping_file or settings.STEP_MAPPING_FILE

    async def handle_failure(self, page: Any, details: FailureDetails, test_title: str,
                             status: str = "failed") -> PipelineReport:
        """Run the whole pipeline for a finished test; passing tests are skipped.

        Raises:
            OracleContractError: Locator healing got a malformed oracle reply
            ConvergenceExhaustedError: Locators still invalid after the last round
        """
        if status not in FAILED_STATUSES:
            logger.info(f"Test '{test_title}' {status}; skipping failure handling")
            return PipelineReport(skipped_reason=f"status {status}")

        run_id = uuid.uuid4().hex[:12]
        healing_logger = get_healing_logger("pipeline", run_id, test_title)
        loop = asyncio.get_event_loop()

        folder = page_capture.create_artifacts_dir(self.artifacts_root, test_title)
        report = PipelineReport(artifacts_dir=str(folder))

        error_text = render_failure_details(details)
        await loop.run_in_executor(
            None, lambda: (folder / page_capture.ERROR_FILE).write_text(error_text, encoding="utf-8"))
        healing_logger.info(f"Saved error details to {page_capture.ERROR_FILE}")

        dom = await page_capture.capture_dom(page)
        await loop.run_in_executor(
            None, lambda: (folder / page_capture.DOM_FILE).write_text(dom, encoding="utf-8"))

        try:
            labels = await label_extractor.extract_from_page(page)
        except Exception as e:
            healing_logger.warning(f"Label extraction from page failed, falling back to saved DOM: {e}")
            labels = label_extractor.extract_from_html(dom)
        label_extractor.save_labels_md(labels, folder / page_capture.LABELS_FILE)
        report.page_labels = labels

        await page_capture.save_screenshot(page, folder / page_capture.SCREENSHOT_FILE)

        await self._resolve_and_heal(report, folder, error_text, dom, test_title, run_id)
        healing_logger.error(f"Test failed. Artifacts saved in: {folder}")
        return report

    async def heal_from_artifacts(self, artifacts_dir: Union[str, Path], test_title: str = "") -> PipelineReport:
        """Offline rerun over a saved artifacts folder (no browser)."""
        folder = Path(artifacts_dir)
        run_id = uuid.uuid4().hex[:12]
        report = PipelineReport(artifacts_dir=str(folder))

        error_text = (folder / page_capture.ERROR_FILE).read_text(encoding="utf-8")
        dom_path = folder / page_capture.DOM_FILE
        dom = dom_path.read_text(encoding="utf-8") if dom_path.exists() else ""

        labels_path = folder / page_capture.LABELS_FILE
        if labels_path.exists():
            labels = read_field_labels_md(labels_path)
        else:
            labels = label_extractor.extract_from_html(dom)
            label_extractor.save_labels_md(labels, labels_path)
        report.page_labels = labels

        await self._resolve_and_heal(report, folder, error_text, dom, test_title, run_id)
        return report

    async def _resolve_and_heal(self, report: PipelineReport, folder: Path, error_text: str, dom: str,
                                test_title: str, run_id: str) -> None:
        healing_logger = get_healing_logger("pipeline", run_id, test_title or None)
        start_time = time.time()

        orchestrator = ResolutionOrchestrator.default(
            self.project_root, self.locator_dir, oracle=self.oracle, config=self.config,
            mapping_file=self.mapping_file, run_id=run_id)
        report.resolution = await orchestrator.resolve(
            ResolutionEvidence(error_text=error_text, test_title=test_title, artifacts_dir=folder))

        if not report.resolution.resolved:
            report.skipped_reason = "locator file unresolved"
            healing_logger.warning("No locator file found; skipped label healing and UI extraction")
            return

        locator_path = self.project_root / report.resolution.locator_file
        if not self.config.enabled or self.oracle is None:
            report.skipped_reason = "healing disabled" if not self.config.enabled else "no repair oracle"
            report.healing = HealingResult(status=HealingStatus.SKIPPED, locator_file=str(locator_path))
            healing_logger.info(f"Healing skipped for {locator_path}: {report.skipped_reason}")
            return

        try:
            declared = list(parse_field_labels(read_text(locator_path)))
        except LocatorFileError as e:
            report.skipped_reason = "locator file unreadable"
            healing_logger.error(f"Cannot heal {locator_path}: {e}")
            return

        healing_logger.log_operation_start("failure_healing", locator_file=str(locator_path))
        field_labels = await LabelHealer(self.oracle, self.config).apply(declared, report.page_labels)
        report.field_labels = field_labels

        evidence: List[LabelEvidence] = []
        try:
            collector = UIEvidenceCollector(self.config)
            evidence = await collector.collect_and_save(
                folder / page_capture.DOM_FILE, field_labels, folder / page_capture.EVIDENCE_FILE)
        except (OSError, ValueError) as e:
            healing_logger.error(f"UI evidence extraction failed, continuing without evidence: {e}")

        healing_loop = LocatorHealingLoop(self.oracle, self.config, run_id=run_id)
        report.healing = await healing_loop.heal(locator_path, dom, evidence, field_labels or None)
        healing_logger.log_operation_success("failure_healing", time.time() - start_time,
                                             locator_file=str(locator_path), status=report.healing.status.value)
