"""Result type for sub-computations that may fall back to a default."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Sub-computation produced a real value."""

    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Sub-computation failed; ``value`` is its fallback.

    Parameters
    ----------
    value : T
        Fallback value substituted for the failed step.
    reason : str
        Why the step fell back, for logs and assertions.
    """

    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Ok[T], Degraded[T]]


def guard(
    step: str,
    compute: Callable[[], T],
    fallback: Callable[[], T],
) -> Outcome[T]:
    """Run ``compute`` and wrap the result, substituting ``fallback()`` on error.

    Parameters
    ----------
    step : str
        Name used in the warning log line.
    compute : Callable[[], T]
        The sub-computation.
    fallback : Callable[[], T]
        Factory for the substitute value.

    Returns
    -------
    Outcome[T]
        ``Ok`` with the computed value, or ``Degraded`` with the fallback and
        the exception text.

    Examples
    --------
    >>> guard("ratio", lambda: 1 / 0, lambda: 0.1)
    Degraded(value=0.1, reason='ZeroDivisionError: division by zero')
    """
    try:
        return Ok(compute())
    except Exception as exc:
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning(f"{step} degraded: {reason}")
        return Degraded(fallback(), reason)
