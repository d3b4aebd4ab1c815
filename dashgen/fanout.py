"""All-settled fan-out/fan-in for concurrent backend calls.

Every branch is bounded by a timeout and settles into a ``BranchResult``;
a failing branch never cancels its siblings. Cancelling the caller cancels
every outstanding branch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BranchResult(Generic[T]):
    name: str
    value: Optional[T] = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, asyncio.TimeoutError)

    def describe_error(self) -> str:
        if self.error is None:
            return ""
        if self.timed_out:
            return f"timed out after {self.elapsed:.1f}s"
        return f"{type(self.error).__name__}: {self.error}"


async def _settle(name: str, awaitable: Awaitable[Any], timeout: Optional[float]) -> BranchResult[Any]:
    started = time.monotonic()
    try:
        value = await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        result = BranchResult(name=name, error=exc, elapsed=time.monotonic() - started)
        logger.warning("Branch %s %s", name, result.describe_error())
        return result
    except Exception as exc:
        result = BranchResult(name=name, error=exc, elapsed=time.monotonic() - started)
        logger.warning("Branch %s failed: %s", name, result.describe_error())
        return result
    return BranchResult(name=name, value=value, elapsed=time.monotonic() - started)


async def gather_settled(
    branches: Dict[str, Awaitable[Any]],
    timeout: Optional[float] = None,
) -> Dict[str, BranchResult[Any]]:
    """Run ``branches`` concurrently and wait until every one has settled.

    Results are keyed by branch name in the order the branches were given.
    """

    if not branches:
        return {}
    names = list(branches)
    settled: List[BranchResult[Any]] = await asyncio.gather(
        *(_settle(name, branches[name], timeout) for name in names)
    )
    return {result.name: result for result in settled}
