"""Candidate locator-file disambiguation by field-label overlap."""

import logging
from typing import Iterable, Mapping, Optional, Sequence

from ..core.models import FieldLabelSet, normalize_label

logger = logging.getLogger(__name__)


def label_overlap(page_labels: Iterable[str], declared_labels: Iterable[str]) -> int:
    """Number of page labels that substring-match (either direction) any declared label."""
    declared = [normalize_label(label) for label in declared_labels if normalize_label(label)]
    if not declared:
        return 0

    score = 0
    for label in page_labels:
        page_label = normalize_label(label)
        if not page_label:
            continue
        if any(page_label in decl or decl in page_label for decl in declared):
            score += 1
    return score


def pick_best_candidate(candidates: Sequence[str], page_labels: Iterable[str],
                        declared_labels: Mapping[str, FieldLabelSet]) -> Optional[str]:
    """Pick the candidate whose declared labels best overlap the page labels.

    With one or no candidates the input is returned as-is. Ties keep input order
    and an all-zero score falls back to the first candidate.
    """
    if len(candidates) <= 1:
        return candidates[0] if candidates else None

    page_labels = list(page_labels)
    best_file = candidates[0]
    best_score = 0

    for candidate in candidates:
        score = label_overlap(page_labels, declared_labels.get(candidate, FieldLabelSet()))
        logger.debug(f"Candidate {candidate} scored {score}")
        if score > best_score:
            best_score = score
            best_file = candidate

    if best_score == 0:
        logger.info(f"No label overlap among {len(candidates)} candidates, using {best_file}")
    else:
        logger.info(f"Picked {best_file} with label overlap {best_score}")
    return best_file
