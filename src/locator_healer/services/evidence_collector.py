"""
UI evidence collection from a static DOM snapshot.

For every field label the collector finds the elements that carry that label and
records, for each, the element's markup, its parent's markup and the markup of
nearby elements. The result is the context a repair oracle needs to write a new
locator without browsing the page itself.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from bs4 import BeautifulSoup, Tag

from ..core.models import EvidenceMatch, HealingConfiguration, LabelEvidence, normalize_label

logger = logging.getLogger(__name__)


class UIEvidenceCollector:
    """Label-to-element evidence extraction using BeautifulSoup."""

    def __init__(self, config: Optional[HealingConfiguration] = None):
        self.config = config or HealingConfiguration()
        self._prefix_labels = {normalize_label(label) for label in self.config.prefix_match_labels}

    def collect(self, html: str, labels: Sequence[str]) -> List[LabelEvidence]:
        """Evidence for each label, in label order. Labels with no match get an empty list."""
        soup = BeautifulSoup(html or "", 'html.parser')
        results = [LabelEvidence(label=label) for label in labels]
        normalized = [normalize_label(label) for label in labels]

        for element in soup.find_all(self.config.evidence_tags):
            for i, label in enumerate(normalized):
                if label and self.element_matches(element, label):
                    results[i].matches.append(self._describe(element))

        total = sum(len(item.matches) for item in results)
        logger.info(f"Collected {total} element match(es) for {len(labels)} label(s)")
        return results

    def element_matches(self, element: Tag, normalized_label: str) -> bool:
        """Whether an element carries the (already normalized) label.

        Text, ``title``, ``aria-label`` and ``placeholder`` must equal the label,
        except for labels in the prefix-match list whose text only has to start with it.
        """
        text = normalize_label(element.get_text())
        if normalized_label in self._prefix_labels and text.startswith(normalized_label):
            return True
        if text == normalized_label:
            return True
        for attr in ("title", "aria-label", "placeholder"):
            value = element.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value is not None and normalize_label(value) == normalized_label:
                return True
        return False

    def _describe(self, element: Tag) -> EvidenceMatch:
        parent = element.parent
        parent_html = str(parent) if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup) else ""

        descendants = [str(child) for child in element.find_all(True)]
        following = [str(node) for node in element.find_all_next(True, limit=self.config.next_elements_count)]

        return EvidenceMatch(
            element_outer_html=str(element),
            parent_outer_html=parent_html,
            nearby_elements=descendants + following,
        )

    async def collect_and_save(self, html_path: Union[str, Path], labels: Sequence[str],
                               out_path: Union[str, Path]) -> List[LabelEvidence]:
        """Read a snapshot, collect evidence and write it as JSON to ``out_path``."""
        loop = asyncio.get_event_loop()
        html = await loop.run_in_executor(None, lambda: Path(html_path).read_text(encoding="utf-8"))
        evidence = await loop.run_in_executor(None, lambda: self.collect(html, labels))
        await loop.run_in_executor(None, lambda: save_evidence(evidence, out_path))
        return evidence


def save_evidence(evidence: Sequence[LabelEvidence], out_path: Union[str, Path]) -> None:
    path = Path(out_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump([item.to_dict() for item in evidence], f, indent=2)
    logger.info(f"UI evidence saved to {path}")


def load_evidence(path: Union[str, Path]) -> List[LabelEvidence]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return [LabelEvidence.from_dict(item) for item in data]
