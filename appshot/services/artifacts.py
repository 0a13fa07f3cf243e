from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from appshot.errors import TransientUIError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from appshot.schemas import AppshotConfig, SizeSpec

LOGGER = logging.getLogger("appshot.artifacts")

_WHITESPACE = re.compile(r"\s+")


def sanitize_size_label(label: str) -> str:
    """Turn a human readable size label into a folder name (``iPhone 6.9"`` -> ``iPhone_6.9_``)."""
    return _WHITESPACE.sub("_", label.replace('"', "_"))


def device_key_from_label(label: str) -> str:
    """Derive the size picker identifier (``iPhone 6.9"`` -> ``iphone-6.9``)."""
    return _WHITESPACE.sub("-", label.lower()).replace('"', "")


class ArtifactStore:
    """Resolve on-disk locations for source screenshots and framed artifacts."""

    def __init__(self, output_root: Path, source_root: Optional[Path] = None) -> None:
        self._output_root = output_root.resolve()
        self._source_root = (source_root or Path.cwd()).resolve()

    @property
    def output_root(self) -> Path:
        return self._output_root

    @property
    def source_root(self) -> Path:
        return self._source_root

    def source_path(self, size: "SizeSpec", locale: str, artifact_id: str) -> Path:
        return self._source_root / size.source_dir / locale / f"{artifact_id}.png"

    def output_path(self, locale: str, size_label: str, artifact_id: str) -> Path:
        return self._output_root / locale / sanitize_size_label(size_label) / f"{artifact_id}.png"

    def verify(self, path: Path, expected: Optional[Tuple[int, int]] = None) -> Tuple[int, int]:
        """Check that an exported file is a decodable image and return its dimensions.

        A dimension mismatch is only logged; the remote UI owns the rendering.
        """
        try:
            with Image.open(path) as image:
                dimensions = image.size
                image.verify()
        except (FileNotFoundError, UnidentifiedImageError, OSError) as exc:
            raise TransientUIError(f"Exported file {path} is not a readable image: {exc}") from exc
        if expected is not None and tuple(dimensions) != tuple(expected):
            LOGGER.warning(
                "Exported %s is %sx%s, expected %sx%s",
                path,
                dimensions[0],
                dimensions[1],
                expected[0],
                expected[1],
            )
        return dimensions

    def missing_sources(self, config: "AppshotConfig") -> Dict[str, List[Path]]:
        """Map each size label to the source screenshots that are not on disk."""
        missing: Dict[str, List[Path]] = {}
        for size in config.sizes:
            absent = [
                self.source_path(size, locale, artifact.id)
                for artifact, locale in config.pairs()
                if not self.source_path(size, locale, artifact.id).exists()
            ]
            if absent:
                missing[size.label] = absent
        return missing
