from __future__ import annotations

import asyncio
import logging
import re
import shutil
import uuid
from typing import Any, Callable

from services.config import Settings, get_settings
from services.export import export_rows
from services.models import AnalysisResult, ExportRow, Topic, TopicsStatus
from services.oracle import OracleUnavailable, SentimentOracle, build_oracle
from services.orchestrator import OrchestratorState, ScoringOrchestrator
from services.storage import ensure_session_dir, read_status, utc_now_iso, write_generation_artifact, write_status
from services.topics import classify_topics
from services.validation import sanitize_preview

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r"[0-9a-f]{32}")


class AnalysisSession:
    """One user's text box: the latest analysis, its topics, and what can be exported."""

    def __init__(self, session_id: str, oracle: SentimentOracle, settings: Settings) -> None:
        self.session_id = session_id
        self.created_at = utc_now_iso()
        self.oracle = oracle
        self.session_dir = ensure_session_dir(settings.data_dir, session_id)
        self.orchestrator = ScoringOrchestrator(
            oracle,
            split_rule=settings.split_rule,
            call_timeout_sec=settings.call_timeout_sec,
        )
        self.orchestrator.add_result_listener(self._on_analysis_complete)
        self.orchestrator.add_error_listener(self._on_analysis_failed)

        self.topics: list[Topic] = []
        self.topics_generation: int | None = None
        self.topics_status: TopicsStatus = "idle"
        self.topics_error: str | None = None
        self._topics_task: asyncio.Task[None] | None = None
        self._save_status()

    @property
    def result(self) -> AnalysisResult | None:
        return self.orchestrator.result

    @property
    def has_result(self) -> bool:
        return self.orchestrator.result is not None

    def submit(self, text: str) -> int:
        self._reset_topics()
        generation = self.orchestrator.submit(text)
        self._save_status()
        return generation

    def clear(self) -> None:
        self._reset_topics()
        self.orchestrator.clear()
        self._save_status()

    async def aclose(self) -> None:
        """Drop in-flight work and release the oracle. The on-disk artifacts stay as last written."""
        self._reset_topics()
        self.orchestrator.clear()
        await self.oracle.aclose()

    async def wait_until_idle(self) -> None:
        while self.orchestrator.state is not OrchestratorState.IDLE or self._topics_task is not None:
            await self.orchestrator.wait_until_idle()
            if self._topics_task is not None:
                await asyncio.wait({self._topics_task})

    def export_rows(self) -> list[ExportRow]:
        result = self.orchestrator.result
        if result is None:
            raise LookupError("No analysis results to export")
        same_generation = self.topics_generation is not None and self.topics_generation == self.orchestrator.result_generation
        return export_rows(result.units, self.topics if same_generation else [])

    def snapshot(self) -> dict[str, Any]:
        orch = self.orchestrator
        return {
            "session_id": self.session_id,
            "state": orch.state.value,
            "generation": orch.generation,
            "pending_generation": orch.pending_generation,
            "result_generation": orch.result_generation,
            "has_result": orch.result is not None,
            "error": orch.error,
            "topics_status": self.topics_status,
            "topics_error": self.topics_error,
            "text_preview": sanitize_preview(orch.text),
            "created_at": self.created_at,
        }

    def _reset_topics(self) -> None:
        self.topics = []
        self.topics_generation = None
        self.topics_status = "idle"
        self.topics_error = None
        # A still-running classification finishes on its own and is ignored as stale.
        self._topics_task = None

    def _save_status(self) -> None:
        try:
            write_status(self.session_dir, self.snapshot())
        except OSError:
            logger.exception("Could not write status for session %s", self.session_id)

    def _save_artifact(self, name: str, generation: int, payload: Any) -> None:
        try:
            write_generation_artifact(self.session_dir, name, generation, payload)
        except OSError:
            logger.exception("Could not write %s for session %s", name, self.session_id)

    def _on_analysis_complete(self, generation: int, result: AnalysisResult) -> None:
        self._save_artifact("result", generation, result.model_dump())
        if not result.units:
            self.topics_generation = generation
            self.topics_status = "completed"
        else:
            self.topics_status = "requesting"
            self._topics_task = asyncio.get_running_loop().create_task(
                self._classify(generation, self.orchestrator.text)
            )
        self._save_status()

    def _on_analysis_failed(self, generation: int, message: str) -> None:
        self._save_status()

    def _is_current(self, generation: int) -> bool:
        return generation == self.orchestrator.generation

    async def _classify(self, generation: int, text: str) -> None:
        try:
            topics = await classify_topics(text, self.oracle)
        except OracleUnavailable as exc:
            if not self._is_current(generation):
                logger.debug("Discarding stale topic failure for generation %d", generation)
                return
            self.topics_status = "failed"
            self.topics_error = f"Could not complete topic analysis: {exc}"
            logger.warning("Topic analysis for generation %d failed: %s", generation, exc)
        else:
            if not self._is_current(generation):
                logger.debug("Discarding stale topics for generation %d", generation)
                return
            self.topics = topics
            self.topics_generation = generation
            self.topics_status = "completed"
            self._save_artifact("topics", generation, [t.model_dump() for t in topics])
        finally:
            if self._topics_task is asyncio.current_task():
                self._topics_task = None
                self._save_status()


class SessionRegistry:
    """Live sessions, oldest evicted first once ``max_sessions`` is exceeded.

    Evicted sessions keep their directory, so their last status can still be read back.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        oracle_factory: Callable[[Settings], SentimentOracle] = build_oracle,
        max_sessions: int | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.max_sessions = max(1, int(max_sessions or self.settings.max_sessions))
        self._oracle_factory = oracle_factory
        self._sessions: dict[str, AnalysisSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self) -> AnalysisSession:
        session_id = uuid.uuid4().hex
        session = AnalysisSession(session_id, self._oracle_factory(self.settings), self.settings)
        self._sessions[session_id] = session
        logger.info("Created session %s", session_id)
        while len(self._sessions) > self.max_sessions:
            oldest_id = next(iter(self._sessions))
            evicted = self._sessions.pop(oldest_id)
            await evicted.aclose()
            logger.info("Evicted session %s (limit %d)", oldest_id, self.max_sessions)
        return session

    def get(self, session_id: str) -> AnalysisSession | None:
        return self._sessions.get(session_id)

    def archived_status(self, session_id: str) -> dict[str, Any] | None:
        if not SESSION_ID_RE.fullmatch(session_id or ""):
            return None
        return read_status(self.settings.data_dir / session_id)

    async def delete(self, session_id: str) -> bool:
        """Close a session and remove its artifacts. False when nothing was known about it."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            await session.aclose()
        found = session is not None
        if SESSION_ID_RE.fullmatch(session_id or ""):
            session_dir = self.settings.data_dir / session_id
            if session_dir.is_dir():
                shutil.rmtree(session_dir)
                found = True
        if found:
            logger.info("Deleted session %s", session_id)
        return found

    def recent(self, limit: int = 20) -> list[AnalysisSession]:
        ordered = sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)
        return ordered[: max(1, int(limit))]
