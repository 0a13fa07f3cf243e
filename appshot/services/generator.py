from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Page

from appshot.errors import PreconditionError
from appshot.schemas import ArtifactSpec, DesignSpec, GenerationSettings, Outcome, SizeSpec
from appshot.services import controls as default_controls
from appshot.services.artifacts import ArtifactStore
from appshot.services.session import is_session_fatal

LOGGER = logging.getLogger("appshot.generator")


@dataclass(frozen=True)
class GenerationTask:
    artifact: ArtifactSpec
    locale: str
    size: SizeSpec

    @property
    def title(self) -> str:
        return self.artifact.titles[self.locale]

    def describe(self) -> str:
        return f"[{self.locale}] [{self.size.label}] {self.artifact.id}"


@dataclass
class TaskResult:
    artifact_id: str
    locale: str
    size_label: str
    outcome: Outcome
    attempts: int
    output_path: Optional[Path] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.success


class AttemptPhase(str, Enum):
    attempting = "attempting"
    succeeded = "succeeded"
    failed = "failed"


@dataclass(frozen=True)
class AttemptState:
    """Position in the per-task retry machine: Attempting(n), Succeeded or Failed."""

    attempt: int = 1
    phase: AttemptPhase = AttemptPhase.attempting
    last_error: Optional[str] = None

    def succeed(self) -> "AttemptState":
        return replace(self, phase=AttemptPhase.succeeded)

    def fail(self, error: str, max_retries: int) -> "AttemptState":
        if self.attempt < max_retries:
            return replace(self, attempt=self.attempt + 1, last_error=error)
        return replace(self, phase=AttemptPhase.failed, last_error=error)


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError) and not str(exc):
        return "attempt exceeded its time budget"
    return f"{type(exc).__name__}: {exc}"


class ArtifactGenerator:
    """Produce one framed screenshot with bounded, fully resetting retries."""

    def __init__(
        self,
        store: ArtifactStore,
        design: DesignSpec,
        settings: GenerationSettings,
        *,
        ui: Any = default_controls,
    ) -> None:
        self._store = store
        self._design = design
        self._settings = settings
        self._ui = ui

    async def generate(self, page: Page, task: GenerationTask) -> TaskResult:
        """Run the retry machine for ``task``.

        Session-level faults (dead browser or context) are not absorbed here;
        they propagate so the caller can rebuild the session.
        """
        prefix = task.describe()
        source = self._store.source_path(task.size, task.locale, task.artifact.id)
        output = self._store.output_path(task.locale, task.size.label, task.artifact.id)

        if not source.exists():
            error = PreconditionError(str(source))
            LOGGER.error("%s - %s", prefix, error)
            return self._result(task, Outcome.failure, 1, message=str(error))

        max_retries = self._settings.max_retries
        state = AttemptState()
        while state.phase is AttemptPhase.attempting:
            LOGGER.info("%s - processing (attempt %s/%s)", prefix, state.attempt, max_retries)
            try:
                await asyncio.wait_for(
                    self._attempt(page, task, source, output, state.attempt),
                    timeout=self._settings.task_timeout_seconds,
                )
            except Exception as exc:  # noqa: BLE001 - every step failure is retried
                if is_session_fatal(exc):
                    raise
                state = state.fail(_describe_error(exc), max_retries)
                LOGGER.error("%s - error: %s", prefix, state.last_error)
                if state.phase is AttemptPhase.attempting:
                    LOGGER.info("%s - retrying", prefix)
                    await asyncio.sleep(self._settings.retry_delay_ms / 1000)
            else:
                state = state.succeed()

        if state.phase is AttemptPhase.succeeded:
            LOGGER.info("%s - done", prefix)
            return self._result(task, Outcome.success, state.attempt, output_path=output)
        LOGGER.error("%s - failed after %s attempts", prefix, state.attempt)
        return self._result(task, Outcome.failure, state.attempt, message=state.last_error)

    async def _attempt(self, page: Page, task: GenerationTask, source: Path, output: Path, attempt: int) -> None:
        settings = self._settings
        ui = self._ui
        settle = settings.reload_settle_ms if attempt == 1 else settings.retry_settle_ms
        await page.reload(wait_until="networkidle")
        await page.wait_for_timeout(settle)
        await ui.select_size(page, task.size)

        await ui.upload_source(page, source, settings.reset_attempt_limit)
        # the editor resets per-tab state on every upload, so every field is rewritten
        await ui.apply_background(page, self._design)
        await ui.apply_device(page, self._design, task.size)
        await ui.apply_text(page, self._design, task.title)
        await ui.wait_for_render(page, settings)
        await ui.export_artifact(page, output, settings)
        self._store.verify(output, (task.size.width, task.size.height))

    @staticmethod
    def _result(
        task: GenerationTask,
        outcome: Outcome,
        attempts: int,
        *,
        output_path: Optional[Path] = None,
        message: Optional[str] = None,
    ) -> TaskResult:
        return TaskResult(
            artifact_id=task.artifact.id,
            locale=task.locale,
            size_label=task.size.label,
            outcome=outcome,
            attempts=attempts,
            output_path=output_path,
            message=message,
        )
