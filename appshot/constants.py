from __future__ import annotations

DEFAULT_LOCAL_URL = "http://localhost:8080"
DEFAULT_FALLBACK_URL = "https://yuzu-hub.github.io/appscreen/"

DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_BROWSER_ARGS = ["--disable-web-security"]
DEFAULT_PERMISSIONS = ["clipboard-read", "clipboard-write"]

DEFAULT_CORNER_RADIUS = 24
DEFAULT_FONT = "Open Sans"
DEFAULT_HEADLINE_WEIGHT = "900"
DEFAULT_TEXT_OFFSET = 12
DEFAULT_BORDER_OPACITY = 100
DEFAULT_POSITION_PRESET = "bleed-bottom"

CUSTOM_DEVICE_KEY = "custom"

# AppScreen control surface. A rename on the remote side only shows up as a
# runtime selector timeout.
SELECTORS = {
    "file_input": "#file-input",
    "screenshot_item": ".screenshot-item:not(.upload-item)",
    "screenshot_menu": ".screenshot-menu-btn",
    "screenshot_delete": ".screenshot-menu-item.screenshot-delete",
    "size_trigger": "#output-size-trigger",
    "size_option": '.device-option[data-device="{device}"]',
    "custom_inputs": "#custom-size-inputs.visible",
    "custom_width": "#custom-width",
    "custom_height": "#custom-height",
    "tab": 'button.tab[data-tab="{tab}"]',
    "bg_gradient": '#bg-type-selector button[data-type="gradient"]',
    "gradient_angle": "#gradient-angle",
    "gradient_stop": "#gradient-stops .gradient-stop",
    "device_type_selector": "#device-type-selector",
    "device_type_2d": '#device-type-selector button[data-type="2d"]',
    "position_trigger": "#position-preset-trigger",
    "position_content": "#position-preset-content",
    "position_preset": 'button.position-preset[data-preset="{preset}"]',
    "frame_toggle": "#frame-toggle",
    "headline_toggle": "#headline-toggle",
    "headline_text": "#headline-text",
    "font_trigger": "#font-picker-trigger",
    "font_search": "#font-search",
    "font_option": '.font-option:has-text("{font}")',
    "headline_weight": "#headline-weight",
    "headline_color": "#headline-color",
    "subheadline_toggle": "#subheadline-toggle",
    "export": "#export-current",
}

# Element ids written through page.evaluate with a synthetic input event.
CORNER_RADIUS_ID = "corner-radius"
TEXT_OFFSET_ID = "text-offset-y"
FRAME_FIELD_IDS = {"width": "frame-width", "color": "frame-color", "opacity": "frame-opacity"}
PREVIEW_CANVAS_ID = "preview-canvas"
