"""Tests for failure details rendering and loading."""

import json

import pytest

from locator_healer.core.exceptions import FailureDetailsError
from locator_healer.core.models import FailureDetails
from locator_healer.services.failure_details import (
    NO_DETAILS,
    details_from_text,
    load_failure_details,
    render_failure_details,
)


PAYLOAD = {
    "schema_version": 1,
    "errors": [{"message": "Timeout 30000ms exceeded", "stack": "at login.page.ts:14:5"}],
    "results": [{
        "errors": [{
            "message": "locator.click: Timeout",
            "stack": "at LoginPage.submit (pages/login.page.ts:14:25)",
            "location": {"file": "pages/login.page.ts", "line": 14, "column": 25},
            "snippet": "> 14 | await this.signIn.click();",
        }],
        "steps": [
            {"title": "Login"},
            {"title": "Submit", "error": {"message": "step failed"}},
        ],
    }],
    "stdout": ["navigating"],
    "attachments": [{"name": "trace", "contentType": "application/zip", "path": "out/trace.zip"}],
}


class TestRender:
    def test_sections_in_order(self):
        text = render_failure_details(FailureDetails.from_dict(PAYLOAD))

        order = ["=== Basic Error 1 ===", "=== Detailed Error 1.1 ===", 'Step Error 1.2: "Submit"',
                 "=== STDOUT ===", "=== Attachments ==="]
        positions = [text.index(marker) for marker in order]
        assert positions == sorted(positions)
        assert "Location: pages/login.page.ts:14:25" in text
        assert "Code Snippet:\n> 14 | await this.signIn.click();" in text
        assert 'npx playwright show-trace "out/trace.zip"' in text

    def test_steps_without_errors_are_skipped(self):
        text = render_failure_details(FailureDetails.from_dict(PAYLOAD))

        assert '"Login"' not in text

    def test_empty_details(self):
        assert render_failure_details(FailureDetails()) == NO_DETAILS


class TestLoad:
    def test_load(self, tmp_path):
        path = tmp_path / "details.json"
        path.write_text(json.dumps(PAYLOAD), encoding="utf-8")

        details = load_failure_details(path)

        assert details.results[0].steps[1].error.message == "step failed"
        assert details.attachments[0].content_type == "application/zip"

    def test_unknown_schema_version(self, tmp_path):
        path = tmp_path / "details.json"
        path.write_text(json.dumps({"schema_version": 99}), encoding="utf-8")

        with pytest.raises(FailureDetailsError):
            load_failure_details(path)

    @pytest.mark.parametrize("content", ["not json", "[1, 2]"])
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "details.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(FailureDetailsError):
            load_failure_details(path)


def test_details_from_text():
    details = details_from_text("Error: boom\n    at x.ts:1:1", "Login test")

    assert details.errors[0].message == "Login test"
    assert "=== Basic Error 1 ===" in render_failure_details(details)
    assert render_failure_details(details_from_text("   ")) == NO_DETAILS
