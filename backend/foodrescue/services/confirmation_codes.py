import random
from typing import Callable, Optional

from foodrescue.config import settings
from foodrescue.utils.logging import get_logger

log = get_logger("codes")

SUFFIX_MIN = 1000
SUFFIX_MAX = 9999


class CodeGenerationExhausted(Exception):
    pass


def code_prefix(merchant_name: str) -> str:
    """First two characters of the merchant name, upper-cased (shorter names give shorter prefixes)."""
    return (merchant_name or "")[:2].upper()


class ConfirmationCodeGenerator:
    """
    Builds codes like ``GR4821``: merchant prefix + random 4-digit suffix.

    ``exists`` is the uniqueness check against stored orders; the unique index
    on orders.confirmation_code remains the final arbiter for concurrent writers.
    """

    def __init__(
        self,
        exists: Callable[[str], bool],
        rng: Optional[random.Random] = None,
        max_attempts: Optional[int] = None,
    ):
        self.exists = exists
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts or settings.CONFIRMATION_CODE_MAX_ATTEMPTS

    def candidate(self, merchant_name: str) -> str:
        return f"{code_prefix(merchant_name)}{self.rng.randint(SUFFIX_MIN, SUFFIX_MAX)}"

    def generate(self, merchant_name: str) -> str:
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate(merchant_name)
            if not self.exists(code):
                return code
            log.debug("code collision %s (attempt %d)", code, attempt)
        log.warning("gave up generating a code for %r after %d attempts", merchant_name, self.max_attempts)
        raise CodeGenerationExhausted(
            f"No free confirmation code after {self.max_attempts} attempts"
        )
