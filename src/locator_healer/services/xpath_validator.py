"""XPath validation of locator expressions against a static DOM snapshot."""

import logging
from typing import Dict, List, Mapping, Sequence, Tuple, Union

import lxml.html
from lxml import etree

from ..core.models import XPATH_PREFIX, LocatorDefinition

logger = logging.getLogger(__name__)


DocumentLike = Union[str, bytes, etree._Element]


class XPathValidator:
    """Evaluates XPath expressions against a parsed HTML document.

    An expression is considered valid only when evaluating it yields at least one
    node. Syntax errors, evaluation errors and non node-set results (strings,
    numbers, booleans) are all reported as "no match".
    """

    def parse(self, html: Union[str, bytes]) -> etree._Element:
        """Parse markup into an lxml tree, tolerating broken HTML."""
        if isinstance(html, bytes):
            html = html.decode("utf-8", errors="replace")
        if not html.strip():
            # document_fromstring rejects empty documents
            html = "<html></html>"
        elif html.lstrip().startswith("<?xml"):
            # lxml refuses str input carrying an encoding declaration
            html = html.encode("utf-8")
        try:
            return lxml.html.document_fromstring(html)
        except (etree.ParserError, ValueError) as e:
            logger.warning(f"DOM snapshot could not be parsed, validating against an empty page: {e}")
            return lxml.html.document_fromstring("<html></html>")

    def matches(self, document: DocumentLike, expression: str) -> bool:
        """Return True if the expression selects at least one node."""
        tree = document if isinstance(document, etree._Element) else self.parse(document)
        query = strip_xpath_prefix(expression)
        if not query.strip():
            return False

        try:
            result = tree.xpath(query)
        except (etree.XPathError, ValueError) as e:
            logger.debug(f"XPath evaluation failed for {query!r}: {e}")
            return False

        return isinstance(result, list) and len(result) > 0

    def partition(self, document: DocumentLike, locators: Mapping[str, str]) -> Tuple[List[str], List[str]]:
        """Split locator keys into (valid, invalid), preserving the mapping's order."""
        tree = document if isinstance(document, etree._Element) else self.parse(document)
        valid, invalid = [], []
        for key, expression in locators.items():
            if self.matches(tree, expression):
                valid.append(key)
            else:
                invalid.append(key)
        return valid, invalid

    def validate_definitions(self, document: DocumentLike,
                             definitions: Sequence[LocatorDefinition]) -> Dict[str, bool]:
        """Per-key validity map, used by the ``validate`` command."""
        tree = document if isinstance(document, etree._Element) else self.parse(document)
        return {definition.key: self.matches(tree, definition.query) for definition in definitions}


def strip_xpath_prefix(expression: str) -> str:
    if expression.startswith(XPATH_PREFIX):
        return expression[len(XPATH_PREFIX):]
    return expression

