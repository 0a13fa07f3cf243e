"""Single configuration steps against the AppScreen editor.

Each coroutine assumes an already navigated page and returns once the editor
has observably applied the step. None of them keeps state between calls.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from appshot.constants import (
    CORNER_RADIUS_ID,
    DEFAULT_POSITION_PRESET,
    FRAME_FIELD_IDS,
    PREVIEW_CANVAS_ID,
    SELECTORS,
    TEXT_OFFSET_ID,
)
from appshot.errors import ExternalTimeout, TransientUIError
from appshot.schemas import DesignSpec, GenerationSettings, SizeSpec

LOGGER = logging.getLogger("appshot.controls")

MENU_TIMEOUT_MS = 2000
PICKER_TIMEOUT_MS = 3000
PANEL_TIMEOUT_MS = 5000
TOGGLE_SETTLE_MS = 500

_IS_ACTIVE_JS = "(el) => el.classList.contains('active')"

_SET_VALUE_JS = (
    "([id, value]) => {"
    "  const el = document.getElementById(id);"
    "  if (!el) return false;"
    "  el.value = value;"
    "  el.dispatchEvent(new Event('input', { bubbles: true }));"
    "  return true;"
    "}"
)

_NOTIFY_CUSTOM_SIZE_JS = (
    "([widthSelector, heightSelector]) => {"
    "  for (const selector of [widthSelector, heightSelector]) {"
    "    const el = document.querySelector(selector);"
    "    if (!el) continue;"
    "    el.dispatchEvent(new Event('input', { bubbles: true }));"
    "    el.dispatchEvent(new Event('change', { bubbles: true }));"
    "  }"
    "}"
)

_CANVAS_HAS_CONTENT_JS = (
    "(id) => {"
    "  const canvas = document.getElementById(id);"
    "  if (!canvas || !canvas.width || !canvas.height) return false;"
    "  const ctx = canvas.getContext('2d');"
    "  if (!ctx) return false;"
    "  const data = ctx.getImageData(0, 0, canvas.width, canvas.height).data;"
    "  for (let i = 3; i < data.length; i += 4) {"
    "    if (data[i] > 0) return true;"
    "  }"
    "  return false;"
    "}"
)


def _number(value: Union[int, float]) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


async def _is_active(page: Page, selector: str) -> bool:
    return bool(await page.locator(selector).evaluate(_IS_ACTIVE_JS))


async def _set_value(page: Page, element_id: str, value: object, *, required: bool = True) -> None:
    applied = await page.evaluate(_SET_VALUE_JS, [element_id, value])
    if not applied and required:
        raise TransientUIError(f"Control #{element_id} not found")


async def switch_tab(page: Page, tab: str) -> None:
    await page.click(SELECTORS["tab"].format(tab=tab))
    await page.wait_for_timeout(300)


async def set_toggle(page: Page, selector: str, enabled: bool) -> None:
    """Drive a flip-only toggle to ``enabled`` and confirm the result.

    A click on these toggles flips state rather than setting it, and a click
    occasionally does not register, so every click is read back.
    """
    if await _is_active(page, selector) == enabled:
        return
    for click in range(2):
        await page.locator(selector).click()
        await page.wait_for_timeout(TOGGLE_SETTLE_MS)
        if await _is_active(page, selector) == enabled:
            if click:
                LOGGER.debug("Toggle %s needed a corrective click", selector)
            return
    raise TransientUIError(f"Toggle {selector} did not reach state active={enabled}")


async def reset_project_state(page: Page, attempt_limit: int = 40) -> int:
    """Delete every screenshot the editor kept from earlier uploads.

    The editor persists its project in browser storage across reloads, so a
    stale screenshot could otherwise end up selected at export time.
    """
    removed = 0
    for _ in range(attempt_limit):
        items = await page.locator(SELECTORS["screenshot_item"]).all()
        if not items:
            break
        try:
            await items[0].locator(SELECTORS["screenshot_menu"]).click(timeout=MENU_TIMEOUT_MS)
            await page.wait_for_timeout(150)
            await page.click(SELECTORS["screenshot_delete"], timeout=MENU_TIMEOUT_MS)
            await page.wait_for_timeout(150)
        except PlaywrightError:
            # menu did not open: nothing removable is left
            break
        removed += 1
    if removed:
        LOGGER.debug("Removed %s stale screenshot(s) from the editor", removed)
    return removed


async def select_size(page: Page, size: SizeSpec) -> None:
    await page.click(SELECTORS["size_trigger"])
    await page.wait_for_timeout(300)
    await page.click(SELECTORS["size_option"].format(device=size.device_attr))
    await page.wait_for_timeout(500)
    if not size.is_custom:
        return

    await page.wait_for_selector(SELECTORS["custom_inputs"], state="visible", timeout=PANEL_TIMEOUT_MS)
    await page.fill(SELECTORS["custom_width"], str(size.width))
    await page.wait_for_timeout(200)
    await page.fill(SELECTORS["custom_height"], str(size.height))
    await page.wait_for_timeout(500)
    # fill() alone does not reach the editor's reactive listeners
    await page.evaluate(_NOTIFY_CUSTOM_SIZE_JS, [SELECTORS["custom_width"], SELECTORS["custom_height"]])
    await page.wait_for_timeout(500)


async def upload_source(page: Page, path: Path, attempt_limit: int = 40) -> None:
    await reset_project_state(page, attempt_limit)
    await page.locator(SELECTORS["file_input"]).set_input_files(str(path))
    await page.wait_for_timeout(500)
    try:
        await page.locator(SELECTORS["screenshot_item"]).first.click(timeout=MENU_TIMEOUT_MS)
        await page.wait_for_timeout(200)
    except PlaywrightError as exc:
        LOGGER.debug("Could not select uploaded screenshot %s: %s", path.name, exc)


async def apply_background(page: Page, design: DesignSpec) -> None:
    background = design.background
    await switch_tab(page, "background")
    await page.click(SELECTORS["bg_gradient"])
    await page.wait_for_timeout(300)
    await page.fill(SELECTORS["gradient_angle"], _number(background.angle))
    await page.wait_for_timeout(200)

    stops = await page.locator(SELECTORS["gradient_stop"]).all()
    if len(stops) < 2:
        raise TransientUIError(f"Expected two gradient stops, found {len(stops)}")
    await stops[0].locator('input[type="color"]').fill(background.color1)
    await stops[1].locator('input[type="color"]').fill(background.color2)
    await page.wait_for_timeout(200)


async def apply_device(page: Page, design: DesignSpec, size: SizeSpec) -> None:
    await switch_tab(page, "screenshot")
    await page.wait_for_timeout(200)
    await page.wait_for_selector(SELECTORS["device_type_selector"], state="visible", timeout=PANEL_TIMEOUT_MS)
    await page.click(SELECTORS["device_type_2d"])
    await page.wait_for_timeout(500)

    try:
        await page.click(SELECTORS["position_trigger"])
        await page.wait_for_selector(SELECTORS["position_content"], state="visible", timeout=PICKER_TIMEOUT_MS)
        await page.click(SELECTORS["position_preset"].format(preset=DEFAULT_POSITION_PRESET))
        await page.wait_for_timeout(300)
    except PlaywrightError:
        LOGGER.warning("Position preset '%s' not available; keeping editor default", DEFAULT_POSITION_PRESET)

    radius = size.corner_radius if size.corner_radius is not None else design.device.corner_radius
    await _set_value(page, CORNER_RADIUS_ID, radius)
    await page.wait_for_timeout(200)

    if size.border is None:
        return
    # the frame toggle comes back disabled after every reload
    await set_toggle(page, SELECTORS["frame_toggle"], True)
    border = size.border
    await _set_value(page, FRAME_FIELD_IDS["width"], border.width, required=False)
    await _set_value(page, FRAME_FIELD_IDS["color"], border.color, required=False)
    await _set_value(page, FRAME_FIELD_IDS["opacity"], border.opacity, required=False)
    await page.wait_for_timeout(200)


async def apply_text(page: Page, design: DesignSpec, title: str) -> None:
    text = design.text
    await switch_tab(page, "text")
    await set_toggle(page, SELECTORS["headline_toggle"], True)

    await page.fill(SELECTORS["headline_text"], title)
    await page.wait_for_timeout(300)

    await page.click(SELECTORS["font_trigger"])
    await page.wait_for_timeout(200)
    await page.fill(SELECTORS["font_search"], text.font)
    await page.wait_for_timeout(300)
    try:
        await page.click(SELECTORS["font_option"].format(font=text.font), timeout=PICKER_TIMEOUT_MS)
        await page.wait_for_timeout(200)
    except PlaywrightError:
        LOGGER.warning("Font '%s' not offered by the editor; keeping default", text.font)

    await page.select_option(SELECTORS["headline_weight"], text.headline_weight)
    await page.wait_for_timeout(200)
    await page.fill(SELECTORS["headline_color"], text.headline_color)
    await page.wait_for_timeout(200)
    await _set_value(page, TEXT_OFFSET_ID, text.vertical_offset)
    await page.wait_for_timeout(200)

    await set_toggle(page, SELECTORS["subheadline_toggle"], False)


async def wait_for_render(page: Page, settings: GenerationSettings) -> bool:
    """Give the preview canvas time to paint; report whether it shows anything.

    Sampling the alpha channel is a heuristic. A canvas that stays blank is
    logged and the export still goes ahead.
    """
    await page.wait_for_timeout(settings.render_wait_ms)
    if await page.evaluate(_CANVAS_HAS_CONTENT_JS, PREVIEW_CANVAS_ID):
        return True
    LOGGER.warning("Preview canvas appears blank; waiting %sms more", settings.blank_canvas_extra_wait_ms)
    await page.wait_for_timeout(settings.blank_canvas_extra_wait_ms)
    has_content = bool(await page.evaluate(_CANVAS_HAS_CONTENT_JS, PREVIEW_CANVAS_ID))
    if not has_content:
        LOGGER.warning("Preview canvas still blank; exporting anyway")
    return has_content


async def export_artifact(page: Page, destination: Path, settings: GenerationSettings) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        async with page.expect_download(timeout=settings.download_timeout_ms) as download_info:
            await page.click(SELECTORS["export"])
        download = await download_info.value
    except PlaywrightTimeoutError as exc:
        raise ExternalTimeout(settings.download_timeout_ms) from exc
    await download.save_as(str(destination))
    return destination
