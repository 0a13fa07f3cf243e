from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from appshot.constants import PREVIEW_CANVAS_ID, SELECTORS
from appshot.schemas import AppshotConfig
from appshot.services.artifacts import ArtifactStore
from appshot.services.session import Session

BASE_PAYLOAD: Dict[str, object] = {
    "screenshots": [
        {"id": "home-screen", "titles": {"en": "Track every trip", "de": "Jede Fahrt im Blick"}},
        {"id": "expense-chart", "titles": {"en": "Know your costs", "de": "Kosten kennen"}},
    ],
    "design": {
        "background": {"color1": "#0F2027", "color2": "#2C5364", "angle": 135},
        "device": {"cornerRadius": 40},
        "text": {"font": "Inter", "headlineWeight": 800, "headlineColor": "#FFFFFF", "verticalOffset": 10},
    },
    "output": {
        "path": "output",
        "sizes": [{"device": 'iPhone 6.9"', "width": 132, "height": 286, "yuzuDevice": "iphone-6.9"}],
    },
    "generation": {
        "retry_delay_ms": 0,
        "render_wait_ms": 0,
        "settle_ms": 0,
        "reload_settle_ms": 0,
        "retry_settle_ms": 0,
    },
}


def write_png(path: Path, size=(8, 8)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", tuple(size), (255, 0, 0, 255)).save(path, format="PNG")
    return path


# --------------------------------------------------------------------- editor page


class FakeDownload:
    def __init__(self, size=(8, 8)) -> None:
        self._size = size

    async def save_as(self, path: str) -> None:
        write_png(Path(path), self._size)


class FakeDownloadInfo:
    def __init__(self, download: FakeDownload) -> None:
        self._download = download

    @property
    def value(self):
        async def _value() -> FakeDownload:
            return self._download

        return _value()


class FakeExpectDownload:
    def __init__(self, page: "FakeEditorPage") -> None:
        self._page = page

    async def __aenter__(self) -> FakeDownloadInfo:
        return FakeDownloadInfo(FakeDownload())

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None and not self._page.download_ok:
            raise PlaywrightTimeoutError("Timeout 30000ms exceeded while waiting for event \"download\"")
        return False


class FakeLocator:
    def __init__(self, page: "FakeEditorPage", selector: str, index: Optional[int] = None) -> None:
        self._page = page
        self._selector = selector
        self._index = index

    async def all(self) -> List["FakeLocator"]:
        return [FakeLocator(self._page, self._selector, i) for i in range(len(self._page.items))]

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._page, self._selector, 0)

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(self._page, selector, self._index)

    async def click(self, timeout: Optional[int] = None) -> None:
        await self._page.click(self._selector, timeout=timeout)

    async def evaluate(self, script: str) -> bool:
        return self._page.toggles.get(self._selector, False)

    async def set_input_files(self, path: str) -> None:
        self._page.uploads.append(path)
        self._page.items.append(Path(path).name)

    async def fill(self, value: str) -> None:
        self._page.filled.setdefault(self._selector, []).append(value)


class FakeEditorPage:
    """Just enough of the AppScreen editor to exercise the control coroutines."""

    def __init__(
        self,
        *,
        items: Iterable[str] = (),
        toggles: Optional[Dict[str, bool]] = None,
        stuck_toggles: Iterable[str] = (),
        menu_broken: bool = False,
        canvas_content: Iterable[bool] = (True,),
        gradient_stops: int = 2,
        download_ok: bool = True,
    ) -> None:
        self.items: List[str] = list(items)
        self.toggles: Dict[str, bool] = dict(toggles or {})
        self._stuck = set(stuck_toggles)
        self.menu_broken = menu_broken
        self._canvas = list(canvas_content)
        self.gradient_stops = gradient_stops
        self.download_ok = download_ok
        self.clicks: List[str] = []
        self.toggle_clicks: Dict[str, int] = {}
        self.filled: Dict[str, List[str]] = {}
        self.waits: List[int] = []
        self.evaluations: List[object] = []
        self.uploads: List[str] = []
        self.selected: Dict[str, str] = {}
        self._menu_open = False

    def locator(self, selector: str) -> FakeLocator:
        if selector == SELECTORS["gradient_stop"]:
            return _GradientStops(self, selector)
        return FakeLocator(self, selector)

    async def click(self, selector: str, timeout: Optional[int] = None) -> None:
        self.clicks.append(selector)
        if selector == SELECTORS["screenshot_menu"]:
            if self.menu_broken or not self.items:
                raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
            self._menu_open = True
            return
        if selector == SELECTORS["screenshot_delete"]:
            if not self._menu_open:
                raise PlaywrightError("menu not open")
            self.items.pop(0)
            self._menu_open = False
            return
        if selector in self.toggles:
            self.toggle_clicks[selector] = self.toggle_clicks.get(selector, 0) + 1
            if selector in self._stuck:
                self._stuck.discard(selector)
                return
            self.toggles[selector] = not self.toggles[selector]

    async def fill(self, selector: str, value: str, timeout: Optional[int] = None) -> None:
        self.filled.setdefault(selector, []).append(value)

    async def select_option(self, selector: str, value: str) -> None:
        self.selected[selector] = value

    async def wait_for_timeout(self, milliseconds: int) -> None:
        self.waits.append(milliseconds)

    async def wait_for_selector(self, selector: str, state: Optional[str] = None, timeout: Optional[int] = None) -> None:
        return None

    async def evaluate(self, script: str, arg: object = None) -> object:
        self.evaluations.append(arg)
        if arg == PREVIEW_CANVAS_ID:
            return self._canvas.pop(0) if len(self._canvas) > 1 else self._canvas[0]
        return True

    def expect_download(self, timeout: Optional[int] = None) -> FakeExpectDownload:
        return FakeExpectDownload(self)


class _GradientStops(FakeLocator):
    async def all(self) -> List[FakeLocator]:
        return [FakeLocator(self._page, f"stop-{i}", i) for i in range(self._page.gradient_stops)]


# --------------------------------------------------------------------- generator stubs


class StubPage:
    def __init__(self) -> None:
        self.reloads = 0
        self.waits: List[int] = []

    async def reload(self, wait_until: Optional[str] = None) -> None:
        self.reloads += 1

    async def wait_for_timeout(self, milliseconds: int) -> None:
        self.waits.append(milliseconds)


class StubControls:
    """Stand-in for the control module. ``failures`` maps a step name to errors raised on successive calls."""

    def __init__(self, failures: Optional[Dict[str, List[BaseException]]] = None, hang: bool = False) -> None:
        self.failures = {key: list(value) for key, value in (failures or {}).items()}
        self.calls: List[str] = []
        self.hang = hang
        self._size = (8, 8)

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)
        if self.hang and name == "export_artifact":
            await asyncio.sleep(10)

    async def select_size(self, page, size) -> None:
        self._size = (size.width, size.height)
        await self._step("select_size")

    async def upload_source(self, page, path, attempt_limit=40) -> None:
        await self._step("upload_source")

    async def apply_background(self, page, design) -> None:
        await self._step("apply_background")

    async def apply_device(self, page, design, size) -> None:
        await self._step("apply_device")

    async def apply_text(self, page, design, title) -> None:
        await self._step("apply_text")

    async def wait_for_render(self, page, settings) -> bool:
        await self._step("wait_for_render")
        return True

    async def export_artifact(self, page, destination: Path, settings) -> Path:
        await self._step("export_artifact")
        return write_png(destination, self._size)


# --------------------------------------------------------------------- session stubs


class StubContext:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class StubSessionManager:
    def __init__(
        self, *, launch_error: Optional[BaseException] = None, create_errors: Iterable[Optional[BaseException]] = ()
    ) -> None:
        self.launch_error = launch_error
        self.create_errors = list(create_errors)
        self.sessions: List[Session] = []
        self.destroyed: List[int] = []
        self.closed = False
        self._next_id = 0

    async def launch_process(self) -> None:
        if self.launch_error is not None:
            raise self.launch_error

    async def create_session(self, navigation_target: str, size) -> Session:
        error = self.create_errors.pop(0) if self.create_errors else None
        if error is not None:
            raise error
        self._next_id += 1
        session = Session(session_id=self._next_id, context=StubContext(), page=StubPage())
        self.sessions.append(session)
        return session

    async def destroy_session(self, session: Optional[Session]) -> None:
        if session is not None:
            self.destroyed.append(session.session_id)
            await session.context.close()

    async def close(self) -> None:
        self.closed = True


# --------------------------------------------------------------------- fixtures


@pytest.fixture
def payload() -> Dict[str, object]:
    return copy.deepcopy(BASE_PAYLOAD)


@pytest.fixture
def make_config(payload: Dict[str, object]) -> Callable[..., AppshotConfig]:
    def _make(**generation: object) -> AppshotConfig:
        data = copy.deepcopy(payload)
        data["generation"].update(generation)  # type: ignore[union-attr]
        return AppshotConfig.model_validate(data)

    return _make


@pytest.fixture
def config(make_config) -> AppshotConfig:
    return make_config()


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(output_root=tmp_path / "output", source_root=tmp_path)


@pytest.fixture
def populate_sources(store: ArtifactStore) -> Callable[..., List[Path]]:
    def _populate(config: AppshotConfig, skip: Iterable[tuple] = ()) -> List[Path]:
        skipped = set(skip)
        written: List[Path] = []
        for size in config.sizes:
            for artifact, locale in config.pairs():
                if (locale, artifact.id) in skipped:
                    continue
                written.append(write_png(store.source_path(size, locale, artifact.id)))
        return written

    return _populate


@pytest.fixture
def editor_page() -> Callable[..., FakeEditorPage]:
    return FakeEditorPage


@pytest.fixture
def stub_controls() -> Callable[..., StubControls]:
    return StubControls


@pytest.fixture
def stub_page() -> Callable[[], StubPage]:
    return StubPage


@pytest.fixture
def session_manager() -> Callable[..., StubSessionManager]:
    return StubSessionManager


@pytest.fixture
def png_writer() -> Callable[..., Path]:
    return write_png
