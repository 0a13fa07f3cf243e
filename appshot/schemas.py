from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from appshot.constants import (
    CUSTOM_DEVICE_KEY,
    DEFAULT_BORDER_OPACITY,
    DEFAULT_CORNER_RADIUS,
    DEFAULT_FALLBACK_URL,
    DEFAULT_FONT,
    DEFAULT_HEADLINE_WEIGHT,
    DEFAULT_LOCAL_URL,
    DEFAULT_TEXT_OFFSET,
    DEFAULT_VIEWPORT,
)
from appshot.errors import ConfigurationError
from appshot.services.artifacts import device_key_from_label, sanitize_size_label


class Wave(str, Enum):
    parallel = "parallel"
    sequential = "sequential"


class Outcome(str, Enum):
    success = "success"
    failure = "failure"


class ArtifactSpec(BaseModel):
    id: str
    titles: Dict[str, str]

    model_config = {"frozen": True}

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Screenshot id must not be empty.")
        if "/" in cleaned or "\\" in cleaned:
            raise ValueError(f"Screenshot id '{cleaned}' must not contain path separators.")
        return cleaned

    @field_validator("titles")
    @classmethod
    def validate_titles(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value:
            raise ValueError("Screenshot titles must define at least one locale.")
        return value

    @property
    def locales(self) -> List[str]:
        return list(self.titles.keys())


class BorderSpec(BaseModel):
    width: float = Field(..., ge=0)
    color: str
    opacity: float = Field(default=DEFAULT_BORDER_OPACITY, ge=0, le=100)

    model_config = {"frozen": True}


class SizeSpec(BaseModel):
    label: str = Field(..., validation_alias=AliasChoices("label", "device"))
    width: int
    height: int
    device_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("device_key", "deviceKey", "yuzuDevice")
    )
    source_dir: str = Field(default="raw", validation_alias=AliasChoices("source_dir", "sourceDir", "rawDir"))
    corner_radius: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("corner_radius", "cornerRadius")
    )
    border: Optional[BorderSpec] = None
    wave: Optional[Wave] = None

    model_config = {"frozen": True}

    @field_validator("width", "height")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Output dimensions must be positive integers.")
        return value

    @property
    def device_attr(self) -> str:
        """Identifier of the size option in the remote size picker."""
        return self.device_key or device_key_from_label(self.label)

    @property
    def is_custom(self) -> bool:
        return self.device_attr == CUSTOM_DEVICE_KEY

    @property
    def folder_name(self) -> str:
        return sanitize_size_label(self.label)


class BackgroundDesign(BaseModel):
    color1: str
    color2: str
    angle: float = Field(default=180, validation_alias=AliasChoices("angle", "angleDegrees", "angle_degrees"))

    model_config = {"frozen": True}


class DeviceDesign(BaseModel):
    corner_radius: float = Field(
        default=DEFAULT_CORNER_RADIUS, validation_alias=AliasChoices("corner_radius", "cornerRadius")
    )

    model_config = {"frozen": True}


class TextDesign(BaseModel):
    font: str = DEFAULT_FONT
    headline_weight: str = Field(
        default=DEFAULT_HEADLINE_WEIGHT, validation_alias=AliasChoices("headline_weight", "headlineWeight")
    )
    headline_color: str = Field(
        default="#ffffff", validation_alias=AliasChoices("headline_color", "headlineColor")
    )
    vertical_offset: float = Field(
        default=DEFAULT_TEXT_OFFSET,
        validation_alias=AliasChoices("vertical_offset", "verticalOffset", "verticalOffsetPercent"),
    )

    model_config = {"frozen": True}

    @field_validator("headline_weight", mode="before")
    @classmethod
    def coerce_weight(cls, value: object) -> str:
        return str(value)


class DesignSpec(BaseModel):
    background: BackgroundDesign
    device: DeviceDesign = Field(default_factory=DeviceDesign)
    text: TextDesign = Field(default_factory=TextDesign)

    model_config = {"frozen": True}


class Viewport(BaseModel):
    width: int
    height: int

    @field_validator("width", "height")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Viewport dimensions must be positive integers.")
        return value


class GenerationSettings(BaseModel):
    """Timers and bounds that steer the generation engine."""

    max_retries: int = Field(default=3, ge=1)
    task_timeout_seconds: float = Field(default=90, gt=0)
    download_timeout_ms: int = Field(default=30000, gt=0)
    render_wait_ms: int = Field(default=2000, ge=0)
    blank_canvas_extra_wait_ms: int = Field(default=1000, ge=0)
    settle_ms: int = Field(default=1000, ge=0)
    reload_settle_ms: int = Field(default=500, ge=0)
    retry_delay_ms: int = Field(default=1500, ge=0)
    retry_settle_ms: int = Field(default=1000, ge=0)
    refresh_interval: int = Field(default=12, ge=1)
    large_canvas_refresh_interval: int = Field(default=6, ge=1)
    large_canvas_pattern: str = "ipad"
    parallel_pattern: str = "iphone"
    reset_attempt_limit: int = Field(default=40, ge=1)
    local_url: str = DEFAULT_LOCAL_URL
    fallback_url: str = DEFAULT_FALLBACK_URL
    probe_timeout_seconds: float = Field(default=3, gt=0)
    viewport: Viewport = Field(default_factory=lambda: Viewport(**DEFAULT_VIEWPORT))
    headless: bool = True

    model_config = {"frozen": True}

    def refresh_interval_for(self, size: SizeSpec) -> int:
        if self.large_canvas_pattern.lower() in size.label.lower():
            return self.large_canvas_refresh_interval
        return self.refresh_interval


class OutputSpec(BaseModel):
    path: str = "output"
    sizes: List[SizeSpec]

    model_config = {"frozen": True}

    @field_validator("sizes")
    @classmethod
    def validate_sizes(cls, value: List[SizeSpec]) -> List[SizeSpec]:
        if not value:
            raise ValueError("At least one output size is required.")
        folders = [size.folder_name for size in value]
        duplicates = sorted({name for name in folders if folders.count(name) > 1})
        if duplicates:
            raise ValueError(f"Output sizes collide on folder names: {', '.join(duplicates)}")
        return value


class AppshotConfig(BaseModel):
    screenshots: List[ArtifactSpec]
    design: DesignSpec
    output: OutputSpec
    generation: GenerationSettings = Field(default_factory=GenerationSettings)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_screenshots(self) -> "AppshotConfig":
        if not self.screenshots:
            raise ValueError("At least one screenshot is required.")
        ids = [item.id for item in self.screenshots]
        duplicates = sorted({item for item in ids if ids.count(item) > 1})
        if duplicates:
            raise ValueError(f"Duplicate screenshot ids: {', '.join(duplicates)}")
        return self

    @classmethod
    def load(cls, path: Path) -> "AppshotConfig":
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Configuration file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Configuration file {path} is invalid:\n{exc}") from exc

    @property
    def sizes(self) -> List[SizeSpec]:
        return self.output.sizes

    @property
    def locales(self) -> List[str]:
        seen: Dict[str, None] = {}
        for artifact in self.screenshots:
            for locale in artifact.locales:
                seen.setdefault(locale, None)
        return list(seen)

    def pairs(self) -> Iterator[Tuple[ArtifactSpec, str]]:
        """Yield every (artifact, locale) pair in configuration order."""
        for artifact in self.screenshots:
            for locale in artifact.locales:
                yield artifact, locale

    def tasks_per_size(self) -> int:
        return sum(len(artifact.titles) for artifact in self.screenshots)

    def total_expected(self) -> int:
        return self.tasks_per_size() * len(self.sizes)


class RunSummary(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    total_expected: int = 0
    breakdown: Dict[str, Dict[str, Dict[str, int]]] = Field(default_factory=dict)
    failures: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failure_count == 0 and self.success_count == self.total_expected
