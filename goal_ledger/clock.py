"""
Clock source.

Everything time-dependent (status derivation, installment projection,
creation timestamps) takes a clock callable so tests can pin "now".
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
