"""Build settings and the fixed constants of the asset pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

EXCLUDED_DIRS = frozenset({"node_modules", "dist", ".git", "scripts"})

STATIC_MANIFEST = (
    "fonts",
    "icons",
    "models",
    "mockups",
    "manifest.json",
    "robots.txt",
    "sitemap.xml",
    "service-worker.js",
    "submision_sound.mp3",
)

RASTER_EXTS = {".jpg", ".jpeg", ".png"}
NEXT_GEN_EXT = ".webp"
IMAGE_QUALITY = 80
PNG_COMPRESS_LEVEL = 8

JS_TARGET = "es2015"

ENTRY_DOCUMENT = "index.html"
LOADER_CSS = "css/loaders/loader.css"
# <img> tags containing any of these are above the fold
PRIORITY_MARKERS = ("avatar__image", "jude.jpg")
WIDGET_MARKER = "widget.js"


@dataclass
class BuildConfig:
    """Where to read from, where to write to, and what to leave alone."""

    root: Path
    dist: Optional[Path] = None
    excluded_dirs: FrozenSet[str] = EXCLUDED_DIRS
    static_manifest: Tuple[str, ...] = STATIC_MANIFEST
    threads: int = field(default_factory=lambda: os.cpu_count() or 4)

    def __post_init__(self) -> None:
        self.root = Path(self.root).resolve()
        self.dist = Path(self.dist).resolve() if self.dist else self.root / "dist"
        # Never scan our own output, whatever it is called
        self.excluded_dirs = frozenset(self.excluded_dirs) | {self.dist.name}
        if self.threads < 1:
            self.threads = 1

    @property
    def img_dir(self) -> Path:
        return self.root / "img"

    @property
    def css_dir(self) -> Path:
        return self.root / "css"

    @property
    def js_dir(self) -> Path:
        return self.root / "js"

    @property
    def entry_document(self) -> Path:
        return self.root / ENTRY_DOCUMENT

    def target_for(self, src: Path) -> Path:
        """Mirror a source path under the output root."""
        return self.dist / src.relative_to(self.root)
