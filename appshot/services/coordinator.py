from __future__ import annotations

import asyncio
import logging
import urllib.error
import urllib.request
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from playwright.async_api import async_playwright

from appshot.schemas import AppshotConfig, GenerationSettings, Outcome, RunSummary, SizeSpec, Wave
from appshot.services.artifacts import ArtifactStore
from appshot.services.scheduler import SizeResult, SizeScheduler, failed_size
from appshot.services.session import SessionManager

LOGGER = logging.getLogger("appshot.coordinator")


def probe_url(url: str, timeout: float) -> bool:
    request = urllib.request.Request(url, method="HEAD")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            status = getattr(response, "status", 200)
            return 200 <= int(status) < 400
    except (urllib.error.URLError, OSError, ValueError):
        return False


async def resolve_base_url(settings: GenerationSettings, override: Optional[str] = None) -> str:
    """Pick the editor address: explicit override, then a local instance, then the public demo."""
    if override:
        LOGGER.info("Using editor URL from command line: %s", override)
        return override
    if await asyncio.to_thread(probe_url, settings.local_url, settings.probe_timeout_seconds):
        LOGGER.info("Using local editor instance at %s", settings.local_url)
        return settings.local_url
    LOGGER.warning("Local editor not reachable at %s; using %s", settings.local_url, settings.fallback_url)
    return settings.fallback_url


def partition_waves(
    sizes: Iterable[SizeSpec], settings: GenerationSettings
) -> Tuple[List[SizeSpec], List[SizeSpec]]:
    """Split sizes into a concurrent wave and a one-at-a-time wave.

    An explicit ``wave`` on the size wins; otherwise handheld labels run in
    parallel and large canvases run sequentially to cap browser memory.
    """
    parallel: List[SizeSpec] = []
    sequential: List[SizeSpec] = []
    pattern = settings.parallel_pattern.lower()
    for size in sizes:
        wave = size.wave
        if wave is None:
            wave = Wave.parallel if pattern in size.label.lower() else Wave.sequential
        (parallel if wave is Wave.parallel else sequential).append(size)
    return parallel, sequential


def summarize(size_results: Iterable[SizeResult], total_expected: int) -> RunSummary:
    breakdown: Dict[str, Dict[str, Dict[str, int]]] = {}
    failures: List[str] = []
    success_count = 0
    failure_count = 0
    for size_result in size_results:
        for item in size_result.results:
            counts = breakdown.setdefault(item.locale, {}).setdefault(
                item.size_label, {Outcome.success.value: 0, Outcome.failure.value: 0}
            )
            counts[item.outcome.value] += 1
            if item.outcome is Outcome.success:
                success_count += 1
            else:
                failure_count += 1
                failures.append(f"[{item.locale}] [{item.size_label}] {item.artifact_id}: {item.message or 'failed'}")
    return RunSummary(
        success_count=success_count,
        failure_count=failure_count,
        total_expected=total_expected,
        breakdown=breakdown,
        failures=failures,
    )


def exit_code(summary: RunSummary) -> int:
    return 0 if summary.succeeded else 1


class RunCoordinator:
    """Top level of a generation run: waves of size schedulers and the final tally."""

    def __init__(
        self,
        config: AppshotConfig,
        store: ArtifactStore,
        *,
        base_url_override: Optional[str] = None,
        scheduler_factory: Optional[Callable[[str], SizeScheduler]] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._base_url_override = base_url_override
        self._scheduler_factory = scheduler_factory

    async def run(self) -> RunSummary:
        config = self._config
        base_url = await resolve_base_url(config.generation, self._base_url_override)
        LOGGER.info(
            "Configuration loaded: %s screenshots, %s locales, %s sizes, %s to generate",
            len(config.screenshots),
            len(config.locales),
            len(config.sizes),
            config.total_expected(),
        )

        if self._scheduler_factory is not None:
            size_results = await self._run_waves(self._scheduler_factory(base_url))
        else:
            async with async_playwright() as playwright:
                scheduler = SizeScheduler(
                    config,
                    self._store,
                    base_url,
                    partial(SessionManager, playwright.chromium, config.generation),
                )
                size_results = await self._run_waves(scheduler)

        summary = summarize(size_results, config.total_expected())
        self._log_summary(summary)
        return summary

    async def _run_waves(self, scheduler: SizeScheduler) -> List[SizeResult]:
        parallel, sequential = partition_waves(self._config.sizes, self._config.generation)
        results: List[SizeResult] = []
        if parallel:
            LOGGER.info("Wave 1 (parallel): %s", ", ".join(size.label for size in parallel))
            results.extend(await asyncio.gather(*(self._run_size(scheduler, size) for size in parallel)))
        for size in sequential:
            LOGGER.info("Wave (sequential): %s", size.label)
            results.append(await self._run_size(scheduler, size))
        return results

    async def _run_size(self, scheduler: SizeScheduler, size: SizeSpec) -> SizeResult:
        try:
            return await scheduler.run(size)
        except Exception as exc:  # noqa: BLE001 - one size never aborts the run
            LOGGER.exception("Unhandled error while processing size %s", size.label)
            return failed_size(self._config, size, f"{type(exc).__name__}: {exc}")

    def _log_summary(self, summary: RunSummary) -> None:
        LOGGER.info("=" * 50)
        LOGGER.info("GENERATION COMPLETE")
        LOGGER.info("=" * 50)
        for locale, sizes in summary.breakdown.items():
            for size_label, counts in sizes.items():
                LOGGER.info(
                    "  %-6s %-20s %s ok, %s failed",
                    locale,
                    size_label,
                    counts[Outcome.success.value],
                    counts[Outcome.failure.value],
                )
        LOGGER.info("Success: %s/%s", summary.success_count, summary.total_expected)
        LOGGER.info("Failures: %s/%s", summary.failure_count, summary.total_expected)
        for failure in summary.failures:
            LOGGER.error("  %s", failure)
        if summary.failure_count:
            LOGGER.warning("Some screenshots failed to generate; check the errors above.")
        else:
            LOGGER.info("All screenshots generated successfully.")
