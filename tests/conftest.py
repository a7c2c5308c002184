"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add the package source to Python path for testing
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


LOGIN_LOCATORS = '''export default {
  fieldlabels: "User Name, Password, Sign In",
  userName: "xpath=//input[@id='user']",
  password: "xpath=//input[@id='pass']",
  signIn: "xpath=//button[@id='old']",
};
'''

LOGIN_PAGE = '''import { Page, Locator } from '@playwright/test';
import loginLocators from '../locators/loginLocators';

export class LoginPage {
  readonly page: Page;
  readonly signIn: Locator;

  constructor(page: Page) {
    this.page = page;
    this.signIn = page.locator(loginLocators.signIn);
  }

  async submit() {
    await this.signIn.click();
  }
}
'''

LOGIN_DOM = '''<html><body>
<form id="login">
  <label for="user">User Name</label><input id="user" placeholder="User Name"/>
  <label for="pass">Password</label><input id="pass" type="password"/>
  <button id="signin-btn" title="Sign In">Sign In</button>
</form>
</body></html>
'''


@pytest.fixture
def ui_project(tmp_path):
    """A small UI test project: one page object, locator files and a step mapping."""
    (tmp_path / "pages").mkdir()
    (tmp_path / "locators").mkdir()
    (tmp_path / "pages" / "login.page.ts").write_text(LOGIN_PAGE, encoding="utf-8")
    (tmp_path / "locators" / "loginLocators.ts").write_text(LOGIN_LOCATORS, encoding="utf-8")
    (tmp_path / "locators" / "homeLocators.ts").write_text(
        'export default {\n  feildlabels: "Home, Payables, Invoices",\n'
        '  payables: "xpath=//a[@id=\'groupNode_payables\']",\n};\n',
        encoding="utf-8",
    )
    mapping = {
        "stepToLocatorMapping": {
            "Login": ["locators/loginLocators.ts"],
            "Navigate": ["locators/homeLocators.ts"],
            "Submit": ["locators/homeLocators.ts", "locators/loginLocators.ts"],
        },
        "homePageValidationTest": {
            "Login": ["locators/loginLocators.ts"],
            "Validate Home": ["locators/homeLocators.ts"],
        },
    }
    (tmp_path / "locatorFinder.json").write_text(json.dumps(mapping), encoding="utf-8")
    return tmp_path


@pytest.fixture
def login_dom():
    return LOGIN_DOM


@pytest.fixture
def mock_oracle():
    """A repair oracle whose methods are AsyncMocks."""
    oracle = AsyncMock()
    oracle.repair_locators = AsyncMock(return_value={})
    oracle.extract_raw_locator = AsyncMock(return_value=None)
    oracle.suggest_label = AsyncMock(return_value=None)
    return oracle
