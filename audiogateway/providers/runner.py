"""Ordered strategy dispatch for search and audio fetch."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import structlog

from audiogateway.models.video import VideoSummary
from audiogateway.providers.base import Strategy

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class StrategyAttempt:
    """Outcome of one strategy within a run."""

    strategy: str
    outcome: str  # "success", "empty", "error"
    error_type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunResult(Generic[T]):
    """Value produced by the first successful strategy, plus every attempt made."""

    value: Optional[T] = None
    strategy: Optional[str] = None
    attempts: List[StrategyAttempt] = field(default_factory=list)

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.error:
                return attempt.error
        return None


class StrategyRunner:
    """Single-pass dispatcher over an ordered list of strategies.

    Stops at the first strategy that yields a non-empty result. Errors are
    logged and recorded, never propagated. Nothing is retried beyond what a
    strategy does internally.
    """

    def __init__(
        self,
        strategies: Dict[str, Strategy],
        search_order: List[str],
        fetch_order: List[str],
    ) -> None:
        """
        Initialize the runner.

        Args:
            strategies: Strategy records keyed by name
            search_order: Strategy names consulted for search, in order
            fetch_order: Strategy names consulted for audio fetch, in order

        Raises:
            ValueError: If an order names an unknown strategy or one lacking the operation
        """
        self._strategies = dict(strategies)
        self.search_order = self._check_order(search_order, "search")
        self.fetch_order = self._check_order(fetch_order, "fetch_audio")

        logger.info(
            "strategy_runner_configured",
            search_order=self.search_order,
            fetch_order=self.fetch_order,
        )

    def _check_order(self, order: List[str], operation: str) -> List[str]:
        for name in order:
            strategy = self._strategies.get(name)
            if strategy is None:
                raise ValueError(f"Strategy '{name}' is not registered")
            if getattr(strategy, operation) is None:
                raise ValueError(f"Strategy '{name}' does not support {operation}")
        return list(order)

    def list_strategies(self) -> Dict[str, List[str]]:
        return {"search": list(self.search_order), "fetch_audio": list(self.fetch_order)}

    async def search(self, query: str) -> RunResult[List[VideoSummary]]:
        """Run search strategies until one yields results."""
        return await self._run(
            "search",
            self.search_order,
            lambda strategy: strategy.search(query),  # type: ignore[misc]
        )

    async def fetch_audio(self, video_id: str, dest: Path) -> RunResult[Path]:
        """Run fetch strategies until one writes audio to ``dest``."""
        return await self._run(
            "fetch_audio",
            self.fetch_order,
            lambda strategy: strategy.fetch_audio(video_id, dest),  # type: ignore[misc]
        )

    async def _run(
        self,
        operation: str,
        order: List[str],
        invoke: Callable[[Strategy], Awaitable[Any]],
    ) -> RunResult[Any]:
        result: RunResult[Any] = RunResult()

        for name in order:
            strategy = self._strategies[name]
            try:
                value = await invoke(strategy)
            except Exception as e:
                result.attempts.append(
                    StrategyAttempt(name, "error", error_type=type(e).__name__, error=str(e))
                )
                logger.warning(
                    "strategy_outcome",
                    strategy=name,
                    operation=operation,
                    outcome="error",
                    error_type=type(e).__name__,
                    error=str(e)[:500],
                )
                continue

            if not value:
                result.attempts.append(StrategyAttempt(name, "empty"))
                logger.info("strategy_outcome", strategy=name, operation=operation, outcome="empty")
                continue

            result.attempts.append(StrategyAttempt(name, "success"))
            logger.info("strategy_outcome", strategy=name, operation=operation, outcome="success")
            result.value = value
            result.strategy = name
            return result

        logger.warning("strategies_exhausted", operation=operation, tried=len(result.attempts))
        return result
