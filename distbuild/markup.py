"""
Entry document stage.

Rewrites <img> and <script> tags, inlines the loader stylesheet, minifies the
result and writes dist/index.html.
"""

from __future__ import annotations

import json
import re
import time
from pathlib import Path

import minify_html

from .config import (
    LOADER_CSS,
    NEXT_GEN_EXT,
    PRIORITY_MARKERS,
    RASTER_EXTS,
    WIDGET_MARKER,
    BuildConfig,
)
from .models import BuildError, StageReport

# Regex to find <img ... src="..."> case-insensitively
IMG_TAG_RE = re.compile(r"<img\b[^>]*(?<![\w-])src\s*=\s*(['\"])(?P<src>[^'\"]+)\1[^>]*>", re.IGNORECASE)
SCRIPT_TAG_RE = re.compile(r"<script\b[^>]*(?<![\w-])src\s*=\s*(['\"])(?P<src>[^'\"]+)\1[^>]*>", re.IGNORECASE)
LOADING_RE = re.compile(r"(?<![\w-])loading\s*=", re.IGNORECASE)
DECODING_RE = re.compile(r"(?<![\w-])decoding\s*=", re.IGNORECASE)
DEFER_RE = re.compile(r"\sdefer(?=[\s=/>])", re.IGNORECASE)
LOADER_LINK_RE = re.compile(
    r"<link\b(?=[^>]*\brel\s*=\s*(['\"]?)stylesheet\1)[^>]*\bhref\s*=\s*(['\"])(?:\./|/)?"
    + re.escape(LOADER_CSS)
    + r"\2[^>]*>",
    re.IGNORECASE,
)
LD_JSON_RE = re.compile(
    r"(<script\b[^>]*\btype\s*=\s*(['\"]?)application/ld\+json\2[^>]*>)(.*?)(</script\s*>)",
    re.IGNORECASE | re.DOTALL,
)

REMOTE_PREFIXES = ("http:", "https:", "//", "data:")


def insert_attr(tag: str, text: str) -> str:
    """Insert ` text` before the closing '>' (or '/>') of a tag."""
    end = tag.rfind(">")
    if end == -1:
        return tag
    i = end - 1
    while i >= 0 and tag[i].isspace():
        i -= 1
    if i >= 0 and tag[i] == "/":
        return tag[:i].rstrip() + f" {text} " + tag[i:]
    return tag[:end].rstrip() + f" {text}" + tag[end:]


def insert_or_replace_attr(tag: str, attr: str, value: str) -> str:
    patt = re.compile(rf"(?<![\w-]){attr}\s*=\s*(['\"]).*?\1", re.IGNORECASE | re.DOTALL)
    if patt.search(tag):
        return patt.sub(lambda _: f'{attr}="{value}"', tag, count=1)
    return insert_attr(tag, f'{attr}="{value}"')


def next_gen_src(src: str, dist: Path) -> str:
    """
    The .webp equivalent of a local JPEG/PNG reference, if the image stage
    produced one. Anything else comes back unchanged.
    """
    if src.lower().startswith(REMOTE_PREFIXES):
        return src
    cut = len(src)
    for sep in ("?", "#"):
        pos = src.find(sep)
        if pos != -1:
            cut = min(cut, pos)
    path, tail = src[:cut], src[cut:]
    suffix = Path(path).suffix
    if suffix.lower() not in RASTER_EXTS:
        return src
    swapped = path[: -len(suffix)] + NEXT_GEN_EXT
    if not (dist / swapped.lstrip("/")).is_file():
        return src
    return swapped + tail


def rewrite_images(html: str, dist: Path) -> str:
    def repl(m: re.Match) -> str:
        tag = m.group(0)
        src = m.group("src").strip()

        new_src = next_gen_src(src, dist)
        if new_src != src:
            tag = insert_or_replace_attr(tag, "src", new_src)

        if any(marker in tag for marker in PRIORITY_MARKERS) or any(marker in src for marker in PRIORITY_MARKERS):
            return insert_or_replace_attr(tag, "fetchpriority", "high")

        if not LOADING_RE.search(tag):
            tag = insert_attr(tag, 'loading="lazy"')
        if not DECODING_RE.search(tag):
            tag = insert_attr(tag, 'decoding="async"')
        return tag

    return IMG_TAG_RE.sub(repl, html)


def rewrite_scripts(html: str) -> str:
    def repl(m: re.Match) -> str:
        tag = m.group(0)
        if WIDGET_MARKER in m.group("src"):
            return tag
        if DEFER_RE.search(tag):
            return tag
        return insert_attr(tag, "defer")

    return SCRIPT_TAG_RE.sub(repl, html)


def inline_loader_css(html: str, dist: Path) -> str:
    loader = dist / LOADER_CSS
    if not loader.is_file():
        return html
    css = loader.read_text(encoding="utf-8")
    return LOADER_LINK_RE.sub(lambda _: f"<style>{css}</style>", html, count=1)


def compact_ld_json(html: str) -> str:
    def repl(m: re.Match) -> str:
        try:
            data = json.loads(m.group(3))
        except ValueError:
            return m.group(0)
        body = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        # "<\/" stays valid JSON and cannot close the script element
        body = body.replace("</", "<\\/")
        return m.group(1) + body + m.group(4)

    return LD_JSON_RE.sub(repl, html)


def minify_markup(html: str) -> str:
    html = compact_ld_json(html)
    return minify_html.minify(html, minify_css=True, minify_js=True)


def process_markup(config: BuildConfig) -> StageReport:
    print("Processing HTML...")
    report = StageReport("markup")
    start = time.perf_counter()

    entry = config.entry_document
    if not entry.is_file():
        raise BuildError(f"entry document not found: {entry}")
    with open(entry, "r", encoding="utf-8-sig") as f:
        html = f.read()
    original_size = len(html.encode("utf-8"))

    html = rewrite_images(html, config.dist)
    html = rewrite_scripts(html)
    html = inline_loader_css(html, config.dist)
    html = minify_markup(html)

    out = config.dist / entry.name
    with open(out, "w", encoding="utf-8") as f:
        f.write(html)
    print(f"DONE  {entry.name}: {original_size} -> {len(html.encode('utf-8'))} bytes")

    report.processed = 1
    report.elapsed = time.perf_counter() - start
    return report
