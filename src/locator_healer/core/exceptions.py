"""Error taxonomy for the locator healing pipeline.

Not-found outcomes (no stack reference, no mapping entry, no discriminating
label evidence) are ordinary return values and never appear here.
"""

from typing import Iterable, List


class LocatorHealerError(Exception):
    """Base class for all pipeline errors."""


class OracleCallError(LocatorHealerError):
    """The repair oracle could not be reached or did not answer in time."""


class OracleContractError(LocatorHealerError):
    """The repair oracle answered, but not in the agreed shape."""

    def __init__(self, message: str, raw_reply: str = ""):
        super().__init__(message)
        self.raw_reply = raw_reply


class ConvergenceExhaustedError(LocatorHealerError):
    """Some locators were still invalid after the last healing round."""

    def __init__(self, locator_file: str, invalid_keys: Iterable[str], attempts: int):
        self.locator_file = locator_file
        self.invalid_keys: List[str] = list(invalid_keys)
        self.attempts = attempts
        super().__init__(
            f"Failed to heal all locators in {locator_file} after {attempts} attempts; "
            f"still invalid: {', '.join(self.invalid_keys)}"
        )


class FailureDetailsError(LocatorHealerError):
    """A failure-detail payload could not be interpreted."""


class LocatorFileError(LocatorHealerError):
    """A locator-definition file could not be read or written."""
