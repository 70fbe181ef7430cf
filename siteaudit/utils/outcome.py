"""
siteaudit/utils/outcome.py: value-or-defaulted wrapper for pipeline steps.

A step either produced a value or was defaulted with a reason; the caller
decides what the default is. Nothing here raises.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    step: str
    value: Optional[T] = None
    reason: Optional[str] = None   # set when the step was defaulted

    @property
    def defaulted(self) -> bool:
        return self.reason is not None

    def or_default(self, default: T) -> T:
        if self.defaulted:
            logger.warning("step %s defaulted: %s", self.step, self.reason)
            return default
        return self.value


def run_step(step: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    """Run a synchronous step; an exception or a None result becomes a defaulted Outcome."""
    try:
        value = fn(*args, **kwargs)
    except Exception as e:
        return Outcome(step=step, reason=f"{type(e).__name__}: {str(e)[:120]}")
    if value is None:
        return Outcome(step=step, reason="unavailable")
    return Outcome(step=step, value=value)


async def run_async_step(step: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> Outcome[T]:
    """Async twin of run_step."""
    try:
        value = await fn(*args, **kwargs)
    except Exception as e:
        return Outcome(step=step, reason=f"{type(e).__name__}: {str(e)[:120]}")
    if value is None:
        return Outcome(step=step, reason="unavailable")
    return Outcome(step=step, value=value)
