"""
Field label extraction.

Labels come from the rendered page when a live browser page is available
(``extract_from_page``), or from saved markup for offline runs
(``extract_from_html``). Both follow the same sources in the same order:
``<label>`` text, input placeholders/titles/aria-labels, button text and
attributes, table headers, then short standalone text nodes.
"""

import logging
from pathlib import Path
from typing import Any, List, Union

from bs4 import BeautifulSoup, NavigableString, Comment

logger = logging.getLogger(__name__)


MIN_TEXT_NODE_LENGTH = 3
MAX_TEXT_NODE_LENGTH = 47

# Runs inside the browser; returns an array of strings in first-seen order.
EXTRACT_LABELS_SCRIPT = """
() => {
  const labels = new Set();
  const add = (value) => { if (value && value.trim()) labels.add(value.trim()); };

  document.querySelectorAll('label').forEach(el => add(el.innerText));
  document.querySelectorAll('input, textarea, select').forEach(el => {
    ['placeholder', 'title', 'aria-label'].forEach(attr => add(el.getAttribute(attr)));
  });
  document.querySelectorAll('button').forEach(el => {
    add(el.innerText);
    ['title', 'aria-label'].forEach(attr => add(el.getAttribute(attr)));
  });
  document.querySelectorAll('th').forEach(el => add(el.innerText));
  document.querySelectorAll('body *').forEach(el => {
    Array.from(el.childNodes).forEach(node => {
      if (node.nodeType === Node.TEXT_NODE) {
        const txt = (node.textContent || '').trim();
        if (txt.length >= %d && txt.length <= %d) labels.add(txt);
      }
    });
  });
  return Array.from(labels);
}
""" % (MIN_TEXT_NODE_LENGTH, MAX_TEXT_NODE_LENGTH)


async def extract_from_page(page: Any) -> List[str]:
    """Labels from a live page (Playwright ``Page`` or anything with ``evaluate``)."""
    labels = await page.evaluate(EXTRACT_LABELS_SCRIPT)
    return [label for label in (labels or []) if isinstance(label, str) and label.strip()]


def extract_from_html(html: str) -> List[str]:
    """Labels from static markup; no script execution, so hidden text is included."""
    soup = BeautifulSoup(html or "", 'html.parser')
    labels: List[str] = []

    def add(value) -> None:
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip() and value.strip() not in labels:
            labels.append(value.strip())

    for el in soup.find_all('label'):
        add(el.get_text())
    for el in soup.find_all(['input', 'textarea', 'select']):
        for attr in ('placeholder', 'title', 'aria-label'):
            add(el.get(attr))
    for el in soup.find_all('button'):
        add(el.get_text())
        for attr in ('title', 'aria-label'):
            add(el.get(attr))
    for el in soup.find_all('th'):
        add(el.get_text())

    body = soup.body or soup
    for node in body.find_all(string=True):
        if isinstance(node, Comment) or not isinstance(node, NavigableString):
            continue
        if node.parent is None or node.parent.name in ('script', 'style', '[document]'):
            continue
        text = node.strip()
        if MIN_TEXT_NODE_LENGTH <= len(text) <= MAX_TEXT_NODE_LENGTH:
            add(text)

    return labels


def render_labels_md(labels: List[str]) -> str:
    return "\n".join(["# Extracted Field Labels", "", *[f"- {label}" for label in labels], ""])


def save_labels_md(labels: List[str], md_path: Union[str, Path]) -> None:
    path = Path(md_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_labels_md(labels), encoding="utf-8")
    logger.info(f"Saved {len(labels)} field label(s) to {path}")

