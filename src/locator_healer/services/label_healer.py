"""Healing of declared field labels that no longer appear on the page."""

import logging
from typing import Dict, List, Optional, Sequence

from ..core.exceptions import OracleCallError
from ..core.models import HealingConfiguration, normalize_label

logger = logging.getLogger(__name__)


class LabelHealer:
    """Asks the oracle for a replacement of each stale, unprotected label."""

    def __init__(self, oracle, config: Optional[HealingConfiguration] = None):
        self.oracle = oracle
        self.config = config or HealingConfiguration()
        self._protected = {normalize_label(label) for label in self.config.protected_labels}

    def stale_labels(self, declared: Sequence[str], detected: Sequence[str]) -> List[str]:
        """Declared labels that are neither protected nor present on the page."""
        present = {normalize_label(label) for label in detected}
        return [
            label for label in declared
            if normalize_label(label) not in self._protected and normalize_label(label) not in present
        ]

    async def heal(self, declared: Sequence[str], detected: Sequence[str]) -> Dict[str, str]:
        """Map of original label -> suggested replacement. Oracle failures skip the label."""
        healed: Dict[str, str] = {}
        detected = list(detected)

        for label in self.stale_labels(declared, detected):
            try:
                suggestion = await self.oracle.suggest_label(label, detected)
            except OracleCallError as e:
                logger.error(f"Error healing label '{label}': {e}")
                continue
            if suggestion and suggestion != label:
                logger.info(f"Label '{label}' healed to '{suggestion}'")
                healed[label] = suggestion
        return healed

    async def apply(self, declared: Sequence[str], detected: Sequence[str]) -> List[str]:
        """The declared labels with healed replacements substituted in place."""
        healed = await self.heal(declared, detected)
        if not healed:
            logger.info("No label healing applied")
        return [healed.get(label, label) for label in declared]
