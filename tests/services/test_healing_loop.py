"""
Tests for the locator healing loop.

These tests verify the round structure (full map first, then only invalid keys),
the write-on-full-convergence rule and the handling of oracle failures.
"""

from unittest.mock import Mock

import pytest
import pytest_asyncio

from locator_healer.core.exceptions import ConvergenceExhaustedError, OracleCallError, OracleContractError
from locator_healer.core.models import HealingConfiguration, HealingStatus, LabelEvidence
from locator_healer.crew_ai.repair_oracle import RepairOracle
from locator_healer.services.healing_loop import LocatorHealingLoop
from locator_healer.services.locator_file import parse_locators


OLD = "xpath=//button[@id='old']"
FIXED = "xpath=//button[@id='signin-btn']"
USER = "xpath=//input[@id='user']"
PASS = "xpath=//input[@id='pass']"


@pytest.fixture
def locator_file(ui_project):
    return ui_project / "locators" / "loginLocators.ts"


@pytest_asyncio.fixture
async def evidence():
    return [LabelEvidence(label="Sign In")]


class TestConvergence:
    """Scenario: a stale button id repaired on the second round."""

    @pytest.mark.asyncio
    async def test_retry_requests_only_invalid_keys(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = [
            {"userName": USER, "password": PASS, "signIn": OLD},
            {"signIn": FIXED},
        ]
        before = locator_file.read_text(encoding="utf-8")

        result = await LocatorHealingLoop(mock_oracle).heal(locator_file, login_dom, evidence)

        assert result.status is HealingStatus.CONVERGED
        assert len(result.attempts) == 2
        assert result.attempts[0].invalid_keys == ("signIn",)
        assert result.attempts[1].requested_keys == ("signIn",)

        first_call, second_call = mock_oracle.repair_locators.await_args_list
        assert list(first_call.args[0]) == ["userName", "password", "signIn"]
        assert first_call.kwargs["retry"] is False
        assert second_call.args[0] == {"signIn": OLD}
        assert second_call.kwargs["retry"] is True

        after = locator_file.read_text(encoding="utf-8")
        assert after == before.replace(OLD, FIXED)
        assert parse_locators(after) == {"userName": USER, "password": PASS, "signIn": FIXED}

    @pytest.mark.asyncio
    async def test_valid_keys_carried_unchanged(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = [
            {"userName": USER, "password": PASS, "signIn": OLD},
            {"signIn": FIXED},
        ]

        result = await LocatorHealingLoop(mock_oracle).heal(locator_file, login_dom, evidence)

        assert result.healed_locators["userName"] == USER
        assert result.healed_locators["password"] == PASS

    @pytest.mark.asyncio
    async def test_field_labels_written_on_convergence(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.return_value = {"userName": USER, "password": PASS, "signIn": FIXED}

        result = await LocatorHealingLoop(mock_oracle).heal(
            locator_file, login_dom, evidence, ["User Name", "Passcode", "Sign In"])

        assert result.labels_written == ["User Name", "Passcode", "Sign In"]
        assert 'fieldlabels: "User Name,Passcode,Sign In"' in locator_file.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_nothing_to_heal(self, tmp_path, login_dom, evidence, mock_oracle):
        path = tmp_path / "css.ts"
        path.write_text('export default { submit: "#submit" };\n', encoding="utf-8")

        result = await LocatorHealingLoop(mock_oracle).heal(path, login_dom, evidence)

        assert result.status is HealingStatus.NOTHING_TO_HEAL
        mock_oracle.repair_locators.assert_not_awaited()


class TestFailureModes:
    """The on-disk file stays byte-identical whenever the loop does not converge."""

    @pytest.mark.asyncio
    async def test_exhaustion_leaves_file_untouched(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = lambda subset, *args, **kwargs: {
            key: "xpath=//button[@id='still-wrong']" for key in subset
        }
        before = locator_file.read_bytes()

        with pytest.raises(ConvergenceExhaustedError) as exc_info:
            await LocatorHealingLoop(mock_oracle, HealingConfiguration(max_retries=4)).heal(
                locator_file, login_dom, evidence)

        assert exc_info.value.invalid_keys == ["userName", "password", "signIn"]
        assert exc_info.value.attempts == 4
        assert mock_oracle.repair_locators.await_count == 4
        assert locator_file.read_bytes() == before

    @pytest.mark.asyncio
    async def test_partial_exhaustion_reports_remaining_keys(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = lambda subset, *args, **kwargs: {
            key: (OLD if key == "signIn" else subset[key]) for key in subset
        }
        before = locator_file.read_bytes()

        with pytest.raises(ConvergenceExhaustedError) as exc_info:
            await LocatorHealingLoop(mock_oracle, HealingConfiguration(max_retries=2)).heal(
                locator_file, login_dom, evidence)

        assert exc_info.value.invalid_keys == ["signIn"]
        assert "signIn" in str(exc_info.value)
        assert locator_file.read_bytes() == before

    @pytest.mark.asyncio
    async def test_prose_reply_is_fatal_immediately(self, locator_file, login_dom, evidence):
        llm = Mock()
        llm.call = Mock(return_value="I think the button id changed to signin-btn, try that.")
        oracle = RepairOracle(llm=llm, best_practices="reference", timeout=5)
        before = locator_file.read_bytes()

        with pytest.raises(OracleContractError):
            await LocatorHealingLoop(oracle).heal(locator_file, login_dom, evidence)

        assert llm.call.call_count == 1
        assert locator_file.read_bytes() == before

    @pytest.mark.asyncio
    async def test_wrong_keys_are_a_contract_violation(self, locator_file, login_dom, evidence):
        llm = Mock()
        llm.call = Mock(return_value='```json\n{"signIn": "xpath=//button"}\n```')
        oracle = RepairOracle(llm=llm, best_practices="reference", timeout=5)

        with pytest.raises(OracleContractError):
            await LocatorHealingLoop(oracle).heal(locator_file, login_dom, evidence)

    @pytest.mark.asyncio
    async def test_oracle_call_failure_consumes_a_round(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = [OracleCallError("timeout"), {"signIn": FIXED}]

        result = await LocatorHealingLoop(mock_oracle).heal(locator_file, login_dom, evidence)

        assert result.status is HealingStatus.CONVERGED
        assert result.attempts[0].oracle_failed is True
        assert result.attempts[1].requested_keys == ("signIn",)

    @pytest.mark.asyncio
    async def test_oracle_call_failures_count_toward_budget(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = OracleCallError("down")
        before = locator_file.read_bytes()

        with pytest.raises(ConvergenceExhaustedError):
            await LocatorHealingLoop(mock_oracle, HealingConfiguration(max_retries=3)).heal(
                locator_file, login_dom, evidence)

        assert mock_oracle.repair_locators.await_count == 3
        assert locator_file.read_bytes() == before

    @pytest.mark.asyncio
    async def test_double_quoted_expression_is_invalid(self, locator_file, login_dom, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = [
            {"userName": USER, "password": PASS, "signIn": 'xpath=//button[@id="signin-btn"]'},
            {"signIn": FIXED},
        ]

        result = await LocatorHealingLoop(mock_oracle).heal(locator_file, login_dom, evidence)

        assert result.attempts[0].invalid_keys == ("signIn",)
        assert result.healed_locators["signIn"] == FIXED

    @pytest.mark.asyncio
    async def test_placeholder_snapshot_exhausts_without_writing(self, locator_file, evidence, mock_oracle):
        mock_oracle.repair_locators.side_effect = lambda subset, *args, **kwargs: dict(subset)
        before = locator_file.read_bytes()

        with pytest.raises(ConvergenceExhaustedError) as exc_info:
            await LocatorHealingLoop(mock_oracle, HealingConfiguration(max_retries=2)).heal(
                locator_file, "<!-- Could not capture DOM: Target closed -->", evidence)

        assert exc_info.value.invalid_keys == ["userName", "password", "signIn"]
        assert locator_file.read_bytes() == before
