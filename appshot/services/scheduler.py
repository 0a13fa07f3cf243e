from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from appshot.errors import AppshotError
from appshot.schemas import AppshotConfig, Outcome, SizeSpec
from appshot.services.artifacts import ArtifactStore
from appshot.services.generator import ArtifactGenerator, GenerationTask, TaskResult
from appshot.services.session import Session, SessionManager

LOGGER = logging.getLogger("appshot.scheduler")


@dataclass
class SizeResult:
    size_label: str
    results: List[TaskResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.results if item.outcome is Outcome.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for item in self.results if item.outcome is Outcome.failure)


def iter_tasks(config: AppshotConfig, size: SizeSpec) -> Iterator[GenerationTask]:
    for artifact, locale in config.pairs():
        yield GenerationTask(artifact, locale, size)


def failed_task(task: GenerationTask, message: str) -> TaskResult:
    return TaskResult(
        artifact_id=task.artifact.id,
        locale=task.locale,
        size_label=task.size.label,
        outcome=Outcome.failure,
        attempts=1,
        message=message,
    )


def failed_size(config: AppshotConfig, size: SizeSpec, message: str) -> SizeResult:
    """Record every task of ``size`` as failed, used when the size could not run at all."""
    return SizeResult(size.label, [failed_task(task, message) for task in iter_tasks(config, size)])


class SizeScheduler:
    """Drive every (screenshot, locale) pair of one output size through a recycled session."""

    def __init__(
        self,
        config: AppshotConfig,
        store: ArtifactStore,
        navigation_target: str,
        session_factory: Callable[[], SessionManager],
        *,
        generator: Optional[ArtifactGenerator] = None,
    ) -> None:
        self._config = config
        self._settings = config.generation
        self._navigation_target = navigation_target
        self._session_factory = session_factory
        self._generator = generator or ArtifactGenerator(store, config.design, config.generation)

    async def run(self, size: SizeSpec) -> SizeResult:
        result = SizeResult(size.label)
        interval = self._settings.refresh_interval_for(size)
        manager = self._session_factory()
        session: Optional[Session] = None

        LOGGER.info("=" * 50)
        LOGGER.info(
            "Output size: %s (%sx%s), %s screenshots", size.label, size.width, size.height, self._config.tasks_per_size()
        )
        LOGGER.info("=" * 50)
        try:
            try:
                await manager.launch_process()
                session = await manager.create_session(self._navigation_target, size)
            except (PlaywrightError, AppshotError) as exc:
                LOGGER.error("Could not start a browser session for %s: %s", size.label, exc)
                return failed_size(self._config, size, f"Browser session unavailable: {exc}")

            for task in iter_tasks(self._config, size):
                if session is not None and session.tasks_processed >= interval:
                    LOGGER.info(
                        "Refreshing browser context for %s after %s screenshots", size.label, session.tasks_processed
                    )
                    await manager.destroy_session(session)
                    session = None
                if session is None:
                    session = await self._open(manager, size)
                if session is None:
                    result.results.append(failed_task(task, "Browser session unavailable"))
                    continue

                task_result, session = await self._run_task(manager, session, task)
                if session is not None:
                    session.tasks_processed += 1
                result.results.append(task_result)
        finally:
            await manager.destroy_session(session)
            await manager.close()

        LOGGER.info(
            "Finished %s: %s succeeded, %s failed", size.label, result.success_count, result.failure_count
        )
        return result

    async def _open(self, manager: SessionManager, size: SizeSpec) -> Optional[Session]:
        try:
            return await manager.create_session(self._navigation_target, size)
        except (PlaywrightError, AppshotError) as exc:
            LOGGER.error("Could not open a browser session for %s: %s", size.label, exc)
            return None

    async def _run_task(
        self, manager: SessionManager, session: Session, task: GenerationTask
    ) -> Tuple[TaskResult, Optional[Session]]:
        """Run one task; on a session-level fault rebuild the session and try once more."""
        try:
            return await self._generator.generate(session.page, task), session
        except Exception as exc:  # noqa: BLE001 - anything escaping the generator means the session is gone
            LOGGER.warning("%s - %s; recovering browser session", task.describe(), exc)

        await manager.destroy_session(session)
        fresh = await self._open(manager, task.size)
        if fresh is None:
            return failed_task(task, "Browser session could not be recovered"), None
        try:
            return await self._generator.generate(fresh.page, task), fresh
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("%s - %s; skipping", task.describe(), exc)
            return failed_task(task, f"{type(exc).__name__}: {exc}"), fresh
