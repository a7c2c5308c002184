"""
Tests for the failure pipeline (after-test hook).

The page is a Mock exposing the async Playwright surface the pipeline uses.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from locator_healer.core.exceptions import ConvergenceExhaustedError, OracleContractError
from locator_healer.core.models import ErrorEntry, FailureDetails, HealingConfiguration, HealingStatus
from locator_healer.services import page_capture
from locator_healer.services.failure_pipeline import FailurePipeline


STACK_ERROR = (
    "TimeoutError: locator.click: Timeout 30000ms exceeded.\n"
    "    at LoginPage.submit (pages/login.page.ts:14:25)\n"
)
FIXED = {
    "userName": "xpath=//input[@id='user']",
    "password": "xpath=//input[@id='pass']",
    "signIn": "xpath=//button[@id='signin-btn']",
}


def make_page(dom, labels=None):
    page = Mock()
    page.url = "https://app.example.com/login"
    page.wait_for_load_state = AsyncMock()
    page.content = AsyncMock(return_value=dom)
    page.title = AsyncMock(return_value="Login")
    page.evaluate = AsyncMock(return_value=labels if labels is not None else ["User Name", "Password", "Sign In"])
    page.screenshot = AsyncMock(side_effect=lambda path, full_page: Path(path).write_bytes(b"png"))
    page.is_closed = Mock(return_value=False)
    return page


@pytest.fixture
def details():
    return FailureDetails(errors=[ErrorEntry(message="Timeout", stack=STACK_ERROR)])


@pytest.fixture
def pipeline_factory(ui_project, tmp_path):
    def factory(oracle=None, config=None):
        return FailurePipeline(oracle=oracle, config=config or HealingConfiguration(),
                               project_root=ui_project, locator_dir="locators",
                               artifacts_root=tmp_path / "failures")
    return factory


class TestHandleFailure:
    """Artifacts first, then resolution and healing."""

    @pytest.mark.asyncio
    async def test_full_run_heals_locator_file(self, pipeline_factory, mock_oracle, details, login_dom, ui_project):
        mock_oracle.repair_locators.return_value = dict(FIXED)
        pipeline = pipeline_factory(mock_oracle)

        report = await pipeline.handle_failure(make_page(login_dom), details, "Login test", "failed")

        assert report.resolution.strategy == "static"
        assert report.healing.status is HealingStatus.CONVERGED
        assert "signin-btn" in (ui_project / "locators" / "loginLocators.ts").read_text(encoding="utf-8")

        folder = Path(report.artifacts_dir)
        for name in (page_capture.ERROR_FILE, page_capture.DOM_FILE, page_capture.LABELS_FILE,
                     page_capture.EVIDENCE_FILE, page_capture.SCREENSHOT_FILE):
            assert (folder / name).exists(), name
        assert folder.name.startswith("Login_test_")
        assert "at LoginPage.submit" in (folder / page_capture.ERROR_FILE).read_text(encoding="utf-8")
        evidence = json.loads((folder / page_capture.EVIDENCE_FILE).read_text(encoding="utf-8"))
        assert [item["label"] for item in evidence] == ["User Name", "Password", "Sign In"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["passed", "skipped"])
    async def test_non_failed_status_is_skipped(self, pipeline_factory, mock_oracle, details, login_dom, status):
        page = make_page(login_dom)

        report = await pipeline_factory(mock_oracle).handle_failure(page, details, "Login test", status)

        assert report.artifacts_dir is None
        assert report.skipped_reason == f"status {status}"
        page.content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unresolved_still_writes_artifacts(self, pipeline_factory, mock_oracle, login_dom):
        details = FailureDetails(errors=[ErrorEntry(message="Assertion failed", stack="expected 1 to be 2")])

        report = await pipeline_factory(mock_oracle).handle_failure(make_page(login_dom), details, "Math test")

        assert report.skipped_reason == "locator file unresolved"
        assert report.healing is None
        folder = Path(report.artifacts_dir)
        assert (folder / page_capture.DOM_FILE).exists()
        assert not (folder / page_capture.EVIDENCE_FILE).exists()
        mock_oracle.repair_locators.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_oracle_healing_is_skipped(self, pipeline_factory, details, login_dom, ui_project):
        before = (ui_project / "locators" / "loginLocators.ts").read_bytes()

        report = await pipeline_factory().handle_failure(make_page(login_dom), details, "Login test")

        assert report.resolution.resolved
        assert report.healing.status is HealingStatus.SKIPPED
        assert report.skipped_reason == "no repair oracle"
        assert (ui_project / "locators" / "loginLocators.ts").read_bytes() == before

    @pytest.mark.asyncio
    async def test_disabled_healing_is_skipped(self, pipeline_factory, mock_oracle, details, login_dom):
        pipeline = pipeline_factory(mock_oracle, HealingConfiguration(enabled=False))

        report = await pipeline.handle_failure(make_page(login_dom), details, "Login test")

        assert report.skipped_reason == "healing disabled"
        mock_oracle.repair_locators.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_contract_error_propagates_after_artifacts(self, pipeline_factory, mock_oracle, details,
                                                             login_dom, tmp_path):
        mock_oracle.repair_locators.side_effect = OracleContractError("not json", raw_reply="prose")

        with pytest.raises(OracleContractError):
            await pipeline_factory(mock_oracle).handle_failure(make_page(login_dom), details, "Login test")

        folders = list((tmp_path / "failures").iterdir())
        assert len(folders) == 1
        assert (folders[0] / page_capture.EVIDENCE_FILE).exists()

    @pytest.mark.asyncio
    async def test_label_extraction_falls_back_to_dom(self, pipeline_factory, details, login_dom):
        page = make_page(login_dom)
        page.evaluate = AsyncMock(side_effect=RuntimeError("page closed"))

        report = await pipeline_factory().handle_failure(page, details, "Login test")

        assert report.page_labels[:3] == ["User Name", "Password", "Sign In"]

    @pytest.mark.asyncio
    async def test_failed_dom_capture_exhausts_against_placeholder(self, pipeline_factory, mock_oracle, details,
                                                                   login_dom, ui_project, tmp_path):
        mock_oracle.repair_locators.side_effect = lambda subset, *args, **kwargs: dict(subset)
        page = make_page(login_dom)
        page.content = AsyncMock(side_effect=RuntimeError("Target closed"))
        before = (ui_project / "locators" / "loginLocators.ts").read_bytes()

        with pytest.raises(ConvergenceExhaustedError):
            await pipeline_factory(mock_oracle, HealingConfiguration(max_retries=2)).handle_failure(
                page, details, "Login test")

        folders = list((tmp_path / "failures").iterdir())
        assert len(folders) == 1
        dom = (folders[0] / page_capture.DOM_FILE).read_text(encoding="utf-8")
        assert dom.startswith("<!-- Could not capture DOM: Target closed")
        assert (ui_project / "locators" / "loginLocators.ts").read_bytes() == before

    @pytest.mark.asyncio
    async def test_stale_label_is_healed_before_locators(self, pipeline_factory, mock_oracle, details,
                                                         login_dom, ui_project):
        mock_oracle.suggest_label.return_value = "Passcode"
        mock_oracle.repair_locators.return_value = dict(FIXED)
        page = make_page(login_dom, labels=["User Name", "Passcode", "Sign In"])

        report = await pipeline_factory(mock_oracle).handle_failure(page, details, "Login test")

        assert report.field_labels == ["User Name", "Passcode", "Sign In"]
        assert mock_oracle.repair_locators.await_args.args[2] == ["User Name", "Passcode", "Sign In"]
        content = (ui_project / "locators" / "loginLocators.ts").read_text(encoding="utf-8")
        assert 'fieldlabels: "User Name,Passcode,Sign In"' in content


class TestHealFromArtifacts:
    @pytest.mark.asyncio
    async def test_offline_rerun(self, pipeline_factory, mock_oracle, login_dom, tmp_path):
        folder = tmp_path / "saved"
        folder.mkdir()
        (folder / page_capture.ERROR_FILE).write_text(STACK_ERROR, encoding="utf-8")
        (folder / page_capture.DOM_FILE).write_text(login_dom, encoding="utf-8")
        mock_oracle.repair_locators.return_value = dict(FIXED)

        report = await pipeline_factory(mock_oracle).heal_from_artifacts(folder, "Login test")

        assert report.healing.status is HealingStatus.CONVERGED
        assert (folder / page_capture.LABELS_FILE).exists()
        assert report.page_labels[:3] == ["User Name", "Password", "Sign In"]
