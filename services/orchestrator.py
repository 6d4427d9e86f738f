from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Callable

from services.models import AnalysisResult, DistributionEntry, Unit
from services.oracle import OracleUnavailable, SentimentOracle, UnitScoreInvalid
from services.splitter import DEFAULT_SPLIT_RULE, get_split_pattern, split_units
from services.statistics import average, clamp_score, distribution, sentiment_label, standard_deviation

logger = logging.getLogger(__name__)

ResultListener = Callable[[int, AnalysisResult], Any]
ErrorListener = Callable[[int, str], Any]


class OrchestratorState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"


def _validate_score(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise UnitScoreInvalid(f"non-numeric score {raw!r}")
    score = float(raw)
    if not math.isfinite(score):
        raise UnitScoreInvalid(f"non-finite score {raw!r}")
    return clamp_score(score)


class ScoringOrchestrator:
    """Turns each submitted text generation into one AnalysisResult.

    At most one analysis runs at a time. A submission that arrives while a request is
    in flight waits in a single pending slot (latest wins) and is requested as soon as
    the current request finishes. Completions for a generation other than the latest
    are dropped without notifying anyone. Must be driven from a running event loop.
    """

    def __init__(
        self,
        oracle: SentimentOracle,
        split_rule: str = DEFAULT_SPLIT_RULE,
        call_timeout_sec: float | None = 30.0,
    ) -> None:
        get_split_pattern(split_rule)
        self.oracle = oracle
        self.split_rule = split_rule
        self.call_timeout_sec = call_timeout_sec

        self.state = OrchestratorState.IDLE
        self.generation = 0
        self.result: AnalysisResult | None = None
        self.result_generation: int | None = None
        self.error: str | None = None

        self._text = ""
        self._active_generation: int | None = None
        self._pending: tuple[int, str] | None = None
        self._task: asyncio.Task[None] | None = None
        self._result_listeners: list[ResultListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def text(self) -> str:
        return self._text

    @property
    def active_generation(self) -> int | None:
        return self._active_generation

    @property
    def pending_generation(self) -> int | None:
        return self._pending[0] if self._pending else None

    def add_result_listener(self, listener: ResultListener) -> None:
        self._result_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def submit(self, text: str | None) -> int:
        if not str(text or "").strip():
            self.clear()
            return self.generation

        self.generation += 1
        self._text = str(text)
        self.result = None
        self.result_generation = None
        self.error = None

        if self.state is OrchestratorState.REQUESTING:
            self._pending = (self.generation, self._text)
            logger.debug("Generation %d queued behind generation %s", self.generation, self._active_generation)
        else:
            self._start(self.generation, self._text)
        return self.generation

    def clear(self) -> None:
        self.generation += 1
        self._text = ""
        self._pending = None
        self.result = None
        self.result_generation = None
        self.error = None
        # The in-flight task keeps running; its completion no longer matches the generation.
        self._task = None
        self._active_generation = None
        self.state = OrchestratorState.IDLE
        logger.debug("Cleared results at generation %d", self.generation)

    def trigger(self) -> bool:
        """Request the latest generation unless it is already requested or answered."""
        if not self._text or self.result_generation == self.generation:
            return False
        if self.state is OrchestratorState.REQUESTING:
            if self._active_generation == self.generation:
                return False
            self._pending = (self.generation, self._text)
            return True
        self._start(self.generation, self._text)
        return True

    async def wait_until_idle(self) -> None:
        while self._task is not None:
            await asyncio.wait({self._task})

    def _start(self, generation: int, text: str) -> None:
        if self.state is OrchestratorState.REQUESTING and self._active_generation == generation:
            return
        self.state = OrchestratorState.REQUESTING
        self._active_generation = generation
        logger.info("Requesting analysis for generation %d", generation)
        self._task = asyncio.get_running_loop().create_task(self._run(generation, text))

    async def _run(self, generation: int, text: str) -> None:
        try:
            result = await self.analyze(text)
        except Exception as exc:
            self._fail(generation, exc)
        else:
            self._publish(generation, result)
        finally:
            if self._task is asyncio.current_task():
                self._task = None
                self._active_generation = None
                self.state = OrchestratorState.IDLE
                pending, self._pending = self._pending, None
                if pending is not None:
                    self._start(*pending)

    def _publish(self, generation: int, result: AnalysisResult) -> None:
        if generation != self.generation:
            logger.debug("Discarding stale result for generation %d (latest %d)", generation, self.generation)
            return
        self.result = result
        self.result_generation = generation
        self.error = None
        logger.info(
            "Generation %d analyzed: %d/%d units scored",
            generation,
            len(result.units),
            result.units_requested,
        )
        for listener in list(self._result_listeners):
            try:
                listener(generation, result)
            except Exception:
                logger.exception("Result listener failed for generation %d", generation)

    def _fail(self, generation: int, exc: Exception) -> None:
        if generation != self.generation:
            logger.debug("Discarding stale failure for generation %d: %s", generation, exc)
            return
        message = f"Could not complete analysis: {exc}"
        self.result = None
        self.result_generation = None
        self.error = message
        logger.warning("Generation %d failed: %s", generation, exc)
        for listener in list(self._error_listeners):
            try:
                listener(generation, message)
            except Exception:
                logger.exception("Error listener failed for generation %d", generation)

    async def _bounded(self, coro: Any) -> Any:
        if self.call_timeout_sec is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self.call_timeout_sec)

    async def _score_overall(self, text: str) -> float:
        try:
            return _validate_score(await self._bounded(self.oracle.score(text)))
        except OracleUnavailable:
            raise
        except asyncio.TimeoutError as exc:
            raise OracleUnavailable("overall sentiment request timed out") from exc
        except Exception as exc:
            raise OracleUnavailable(f"{exc.__class__.__name__}: {exc}") from exc

    async def _score_unit(self, index: int, unit: str) -> float | None:
        try:
            return _validate_score(await self._bounded(self.oracle.score(unit)))
        except asyncio.TimeoutError:
            logger.warning("Unit %d dropped: sentiment request timed out", index + 1)
        except Exception as exc:
            logger.warning("Unit %d dropped: %s", index + 1, exc)
        return None

    async def analyze(self, text: str) -> AnalysisResult:
        units = split_units(text, self.split_rule)
        if not units:
            return AnalysisResult.empty()

        results = await asyncio.gather(
            self._score_overall(text),
            *[self._score_unit(i, unit) for i, unit in enumerate(units)],
            return_exceptions=True,
        )
        overall = results[0]
        if isinstance(overall, BaseException):
            raise overall

        scored = [Unit(text=unit, score=score) for unit, score in zip(units, results[1:]) if isinstance(score, float)]
        scores = [u.score for u in scored]
        return AnalysisResult(
            overall_score=overall,
            overall_label=sentiment_label(overall),
            average=average(scores),
            std_dev=standard_deviation(scores),
            units=scored,
            distribution=[DistributionEntry.model_validate(row) for row in distribution(scores)],
            units_requested=len(units),
            units_discarded=len(units) - len(scored),
        )
