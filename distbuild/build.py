"""
Build dist/ from the site sources.

Stages run in a fixed order against a freshly emptied output directory:
images, styles, scripts, static copy, markup, security configs. Markup has to
follow styles because it inlines the minified loader stylesheet.

Per-file minify/encode failures are handled inside their stage. Anything else
stops the build with exit code 1.
"""

from __future__ import annotations

import argparse
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .assets import copy_static, find_esbuild_bin, process_scripts, process_styles
from .config import BuildConfig
from .markup import process_markup
from .models import BuildError, StageReport
from .optimiser import detect_codec, process_images
from .security import write_security_configs


def prepare_dist(config: BuildConfig) -> None:
    if config.root == config.dist or config.root.is_relative_to(config.dist):
        raise BuildError(f"refusing to empty {config.dist}: it contains the sources")
    if config.dist.exists():
        shutil.rmtree(config.dist)
    config.dist.mkdir(parents=True)


def build_stages(config: BuildConfig) -> List[Callable[[], StageReport]]:
    """Look up the optional tools once and bind every stage to its inputs."""
    codec = detect_codec()
    esbuild = find_esbuild_bin()
    return [
        lambda: process_images(config, codec),
        lambda: process_styles(config),
        lambda: process_scripts(config, esbuild),
        lambda: copy_static(config),
        lambda: process_markup(config),
        lambda: write_security_configs(config),
    ]


def run_build(config: BuildConfig) -> int:
    overall_start = time.perf_counter()
    reports: List[StageReport] = []
    try:
        prepare_dist(config)
        for stage in build_stages(config):
            reports.append(stage())
    except Exception as e:
        print(f"Build failed: {e}", file=sys.stderr)
        return 1

    for report in reports:
        print(f"  {report.summary()}")
    print(f"Build complete! ({time.perf_counter() - overall_start:.2f}s)")
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build an optimised dist/ directory from the site sources.")
    parser.add_argument("--root", default=".", help="Site root containing img/, css/, js/ and index.html")
    parser.add_argument("--dist", default=None, help="Output directory (default: <root>/dist). Emptied on every run")
    parser.add_argument("--threads", type=int, default=os.cpu_count() or 4, help="Worker threads for image encoding")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    config = BuildConfig(
        root=Path(args.root),
        dist=Path(args.dist) if args.dist else None,
        threads=args.threads,
    )
    sys.exit(run_build(config))


if __name__ == "__main__":
    main()
