"""
Page capture helpers: artifacts folder, DOM snapshot and screenshot.

The page argument is a Playwright async ``Page`` (or an object with the same
``content``/``title``/``url``/``screenshot``/``is_closed``/``wait_for_load_state``
surface).
"""

import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Union

from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)


ERROR_FILE = "full-error.txt"
DOM_FILE = "faileddom.html"
LABELS_FILE = "field-labels.md"
EVIDENCE_FILE = "ui-elements.json"
SCREENSHOT_FILE = "failedscreenshot.png"

_UNSAFE_CHARS = re.compile(r"[^\w\d\-_]")


def safe_filename(title: str) -> str:
    return _UNSAFE_CHARS.sub("_", title)


def create_artifacts_dir(root: Union[str, Path], test_title: str, now: Optional[datetime] = None) -> Path:
    """Create ``<root>/<safe_title>_<timestamp>`` and return it."""
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    folder = Path(root).resolve() / f"{safe_filename(test_title)}_{timestamp}"
    folder.mkdir(parents=True, exist_ok=True)
    logger.info(f"Artifacts folder: {folder}")
    return folder


async def capture_dom(page: Any) -> str:
    """Serialized DOM prefixed with a metadata comment; a placeholder comment on failure."""
    try:
        await page.wait_for_load_state("load")
        raw_dom = await page.content()
        title = await page.title()
        captured = datetime.now(timezone.utc).isoformat()
        meta = f"<!--\nURL: {page.url}\nTitle: {title}\nCaptured: {captured}\n-->"
        logger.info("Captured DOM snapshot")
        return meta + "\n" + raw_dom
    except Exception as e:
        logger.warning(f"Failed to capture DOM: {e}")
        return f"<!-- Could not capture DOM: {e} -->"


async def save_screenshot(page: Any, path: Union[str, Path]) -> bool:
    """Full-page screenshot; writes an empty placeholder file when capture fails."""
    target = Path(path)
    try:
        if not page.is_closed():
            await page.screenshot(path=str(target), full_page=True)
            logger.info(f"Saved full-page screenshot to {target}")
            return True
        logger.warning("Page already closed, no screenshot taken")
    except Exception as e:
        logger.warning(f"Screenshot capture failed: {e}")
    target.write_bytes(b"")
    return False


@asynccontextmanager
async def open_page(url: str, headless: bool = True) -> AsyncIterator[Any]:
    """Launch Chromium, open ``url`` and yield the page."""
    playwright_instance = await async_playwright().start()
    browser = None
    try:
        browser = await playwright_instance.chromium.launch(headless=headless)
        page = await browser.new_page()
        await page.goto(url)
        yield page
    finally:
        if browser is not None:
            await browser.close()
        await playwright_instance.stop()
