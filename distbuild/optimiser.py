"""
Image stage: re-encode JPEG/PNG into dist/ and emit a WebP sibling for each.

The codec is Pillow. detect_codec() is run once before the build; when the
installed Pillow cannot write WebP every image is copied through untouched.
A file that fails to encode is copied through as well.
"""

from __future__ import annotations

import concurrent.futures as cf
import shutil
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, features

from .assets import ensure_dir, rel, scan_tree
from .config import IMAGE_QUALITY, NEXT_GEN_EXT, PNG_COMPRESS_LEVEL, RASTER_EXTS, BuildConfig
from .models import StageReport


def has_alpha(im: Image.Image) -> bool:
    return ("A" in im.mode) or (im.info.get("transparency") is not None)


class ImageCodec:
    """Pillow encoders with the fixed quality settings of the build."""

    def __init__(self, quality: int = IMAGE_QUALITY, compress_level: int = PNG_COMPRESS_LEVEL) -> None:
        self.quality = quality
        self.compress_level = compress_level

    def encode_webp(self, src: Path, dst: Path) -> None:
        with Image.open(src) as im:
            if im.mode not in ("RGB", "RGBA"):
                im = im.convert("RGBA" if has_alpha(im) else "RGB")
            im.save(dst, format="WEBP", quality=self.quality, method=6)

    def encode_original(self, src: Path, dst: Path) -> None:
        ext = src.suffix.lower()
        with Image.open(src) as im:
            if ext in (".jpg", ".jpeg"):
                if im.mode not in ("RGB", "L", "CMYK"):
                    im = im.convert("RGB")
                im.save(dst, format="JPEG", quality=self.quality, optimize=True, progressive=True)
            else:
                im.save(dst, format="PNG", compress_level=self.compress_level)


def detect_codec() -> Optional[ImageCodec]:
    if not features.check("webp"):
        print("Pillow has no WebP support, skipping image optimisation")
        return None
    return ImageCodec()


def next_gen_path(dst: Path) -> Path:
    return dst.with_suffix(NEXT_GEN_EXT)


def process_one(config: BuildConfig, src: Path, codec: Optional[ImageCodec]) -> Tuple[str, bool]:
    """
    Write the outputs for one source file.
    Returns (status line, True if the file had to fall back to a copy).
    """
    dst = config.target_for(src)
    ensure_dir(dst)
    name = rel(config, src)

    if codec is None or src.suffix.lower() not in RASTER_EXTS:
        shutil.copyfile(src, dst)
        return f"COPY  {name}", False

    webp = next_gen_path(dst)
    # A WebP left by a same-stem sibling is only replaced once this file fully encodes
    part = webp.with_name(webp.name + ".part")
    try:
        codec.encode_webp(src, part)
        codec.encode_original(src, dst)
        part.replace(webp)
    except Exception as e:
        if part.exists():
            part.unlink()
        shutil.copyfile(src, dst)
        return f"ERR   {name}: {e}", True

    return f"DONE  {name} -> {dst.name}, {webp.name}", False


def process_group(config: BuildConfig, sources: List[Path], codec: Optional[ImageCodec]) -> List[Tuple[str, bool]]:
    """Sources sharing a WebP path (logo.jpg, logo.png) run one after another."""
    return [process_one(config, src, codec) for src in sources]


def group_by_next_gen(config: BuildConfig, images: List[Path]) -> List[List[Path]]:
    groups: Dict[Path, List[Path]] = {}
    for p in images:
        groups.setdefault(next_gen_path(config.target_for(p)), []).append(p)
    return list(groups.values())


def process_images(config: BuildConfig, codec: Optional[ImageCodec]) -> StageReport:
    print("Processing images...")
    report = StageReport("images")
    start = time.perf_counter()
    (config.dist / "img").mkdir(parents=True, exist_ok=True)

    images: List[Path] = scan_tree(config.img_dir, config.excluded_dirs)
    with cf.ThreadPoolExecutor(max_workers=config.threads) as ex:
        futures = [ex.submit(process_group, config, group, codec) for group in group_by_next_gen(config, images)]
        for fut in cf.as_completed(futures):
            for status, fell_back in fut.result():
                if fell_back:
                    print(status, file=sys.stderr)
                    report.fallbacks += 1
                else:
                    print(status)
                report.processed += 1

    report.elapsed = time.perf_counter() - start
    return report
