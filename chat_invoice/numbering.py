"""Unique, business-prefixed invoice and order numbers.

Numbers look like ``#INV-<CODE>-<YYYYMMDD>-<XXXX>`` (``#ORD-...`` for
orders). A candidate suffix is drawn at random and claimed atomically in the
record store; a taken suffix is redrawn a bounded number of times.
"""
from __future__ import annotations

import logging
import re
import secrets
import string
from datetime import date
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from .errors import NumberGenerationExhausted
from .schemas import BusinessProfile
from .store import RecordStore

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4
NUMBER_PATTERN = r"^#(?P<kind>INV|ORD)-(?P<code>[A-Z0-9]+)-(?P<day>\d{8})-(?P<suffix>[A-Z0-9]{4})$"


class NumberKind(str, Enum):
    INVOICE = "INV"
    ORDER = "ORD"


class NumberState(str, Enum):
    REQUESTED = "requested"
    GENERATED = "generated"
    CHECKED = "checked"
    COMMITTED = "committed"
    RETRIED = "retried"


class NumberReservation(BaseModel):
    number: str
    kind: NumberKind
    business_code: str
    day: date
    suffix: str
    attempts: int
    state: NumberState = NumberState.CHECKED


class _SuffixTaken(Exception):
    pass


def random_suffix() -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


def derive_business_code(business_name: str) -> str:
    """``BEVELIENT`` -> ``BEV``; ``Toko Kue Manis Jaya`` -> ``TKM``."""
    words = business_name.split()
    if not words:
        return ""
    if len(words) == 1:
        return words[0][:3].upper()
    return "".join(word[0] for word in words[:3]).upper()


class NumberGenerator:
    def __init__(
        self,
        store: RecordStore,
        max_attempts: int = 100,
        fallback_code: str = "BIZ",
        derive_code_from_name: bool = False,
        suffix_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.fallback_code = self._clean_code(fallback_code) or "BIZ"
        self.derive_code_from_name = derive_code_from_name
        self.suffix_factory = suffix_factory or random_suffix

    # Public API
    def business_code(self, profile: Optional[BusinessProfile]) -> str:
        code = self._clean_code(profile.business_code if profile else None)
        if not code and self.derive_code_from_name and profile and profile.name:
            code = self._clean_code(derive_business_code(profile.name))
        return code or self.fallback_code

    @staticmethod
    def format_number(kind: NumberKind, business_code: str, day: date, suffix: str) -> str:
        return f"#{kind.value}-{business_code}-{day.strftime('%Y%m%d')}-{suffix}"

    def generate(self, kind: NumberKind, profile: Optional[BusinessProfile], day: date) -> NumberReservation:
        code = self.business_code(profile)
        logger.debug(f"Number {NumberState.REQUESTED.value}: {kind.value} for {code} on {day:%Y%m%d}")

        retrying = Retrying(
            retry=retry_if_exception_type(_SuffixTaken),
            stop=stop_after_attempt(self.max_attempts),
        )
        reservation: Optional[NumberReservation] = None
        try:
            for attempt in retrying:
                with attempt:
                    reservation = self._claim(kind, code, day, attempt.retry_state.attempt_number)
        except RetryError as exc:
            raise NumberGenerationExhausted(
                f"No free {kind.value} number for {code} on {day:%Y%m%d} after {self.max_attempts} attempts",
                attempts=self.max_attempts,
            ) from exc

        logger.info(f"Reserved {reservation.number} after {reservation.attempts} attempt(s)")
        return reservation

    def release(self, reservation: NumberReservation) -> None:
        self.store.release_number(
            reservation.kind.value, reservation.business_code, reservation.day, reservation.suffix
        )
        logger.info(f"Released {reservation.number}")

    # Internals
    def _claim(self, kind: NumberKind, code: str, day: date, attempt: int) -> NumberReservation:
        suffix = self.suffix_factory().upper()
        number = self.format_number(kind, code, day, suffix)
        logger.debug(f"Number {NumberState.GENERATED.value}: {number}")

        if not self.store.reserve_number(kind.value, code, day, suffix):
            logger.debug(f"Number {NumberState.RETRIED.value}: {number} already taken")
            raise _SuffixTaken(number)

        return NumberReservation(
            number=number,
            kind=kind,
            business_code=code,
            day=day,
            suffix=suffix,
            attempts=attempt,
        )

    @staticmethod
    def _clean_code(code: Optional[str]) -> str:
        return re.sub(r"[^A-Za-z0-9]", "", code or "").upper()
