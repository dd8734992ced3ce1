"""
Tree scanning, stylesheet/script minification and the static asset copy.

Stylesheets go through rcssmin, scripts through esbuild when the binary is
available (rjsmin otherwise). A file that fails to minify is copied as is;
the build carries on.
"""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import sys
import time
from pathlib import Path
from typing import Iterable, List, Optional

import rcssmin
import rjsmin

from .config import JS_TARGET, BuildConfig
from .models import StageReport


class MinifyError(ValueError):
    """Raised when an input is too broken to minify safely."""


def ensure_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def rel(config: BuildConfig, p: Path) -> str:
    try:
        return p.relative_to(config.root).as_posix()
    except ValueError:
        return str(p)


# ---------- Tree scanner ----------

def scan_tree(root: Path, excluded: Iterable[str]) -> List[Path]:
    """
    Every file below root, depth first, in directory listing order.
    Directories named in `excluded` are not entered. A missing root gives [].
    """
    excluded = set(excluded)
    files: List[Path] = []
    if not root.is_dir():
        return files
    for entry in os.scandir(root):
        p = Path(entry.path)
        if entry.is_dir():
            if entry.name in excluded:
                continue
            files.extend(scan_tree(p, excluded))
        else:
            files.append(p)
    return files


# ---------- Stylesheets ----------

def check_css_structure(css: str) -> None:
    """Raise MinifyError on unbalanced blocks or unterminated comments/strings."""
    stack: List[str] = []
    pairs = {"}": "{", ")": "("}
    i, n = 0, len(css)
    while i < n:
        ch = css[i]
        if css.startswith("/*", i):
            end = css.find("*/", i + 2)
            if end == -1:
                raise MinifyError(f"unterminated comment at offset {i}")
            i = end + 2
            continue
        if ch in "\"'":
            j = i + 1
            while j < n and css[j] != ch:
                if css[j] == "\\":
                    j += 1
                elif css[j] == "\n":
                    break
                j += 1
            if j >= n or css[j] != ch:
                raise MinifyError(f"unterminated string at offset {i}")
            i = j + 1
            continue
        if ch in "{(":
            stack.append(ch)
        elif ch in "})":
            if not stack or stack.pop() != pairs[ch]:
                raise MinifyError(f"unexpected '{ch}' at offset {i}")
        i += 1
    if stack:
        raise MinifyError(f"unclosed '{stack[-1]}'")


def minify_css(css: str) -> str:
    check_css_structure(css)
    return rcssmin.cssmin(css)


def process_styles(config: BuildConfig) -> StageReport:
    print("Processing CSS...")
    report = StageReport("styles")
    start = time.perf_counter()
    for src in scan_tree(config.css_dir, config.excluded_dirs):
        if src.suffix != ".css":
            continue
        dst = config.target_for(src)
        ensure_dir(dst)
        data = src.read_bytes()
        try:
            out = minify_css(data.decode("utf-8")).encode("utf-8")
            print(f"DONE  {rel(config, src)}  {len(data)} -> {len(out)} bytes")
        except Exception as e:
            print(f"ERR   {rel(config, src)}: CSS minify error: {e}", file=sys.stderr)
            out = data
            report.fallbacks += 1
        dst.write_bytes(out)
        report.processed += 1
    report.elapsed = time.perf_counter() - start
    return report


# ---------- Scripts ----------

# A '/' after one of these starts a regex literal rather than a division
REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")
REGEX_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
}
JS_PAIRS = {"}": "{", ")": "(", "]": "["}


def _skip_quoted(src: str, i: int, what: str) -> int:
    """Index just past the string opened at i; raises if it never closes on its line."""
    quote = src[i]
    j, n = i + 1, len(src)
    while j < n:
        c = src[j]
        if c == "\\":
            j += 2
            continue
        if c == "\n":
            break
        if c == quote:
            return j + 1
        j += 1
    raise MinifyError(f"unterminated {what} at offset {i}")


def _scan_template(js: str, i: int):
    """Scan template text from i. Returns (next index, True if a ${ was opened)."""
    start, n = i, len(js)
    while i < n:
        if js[i] == "\\":
            i += 2
            continue
        if js[i] == "`":
            return i + 1, False
        if js.startswith("${", i):
            return i + 2, True
        i += 1
    raise MinifyError(f"unterminated template literal near offset {start}")


def _skip_regex(js: str, i: int) -> int:
    j, n = i + 1, len(js)
    in_class = False
    while j < n:
        c = js[j]
        if c == "\\":
            j += 2
            continue
        if c == "\n":
            break
        if in_class:
            if c == "]":
                in_class = False
        elif c == "[":
            in_class = True
        elif c == "/":
            j += 1
            while j < n and (js[j].isalnum() or js[j] == "_"):
                j += 1
            return j
        j += 1
    raise MinifyError(f"unterminated regular expression at offset {i}")


def check_js_structure(js: str) -> None:
    """
    Raise MinifyError on unbalanced brackets or unterminated comments,
    strings, template literals and regex literals.
    """
    stack: List[str] = []
    prev = ""
    i, n = 0, len(js)
    while i < n:
        ch = js[i]
        if js.startswith("//", i):
            end = js.find("\n", i)
            i = n if end == -1 else end
            continue
        if js.startswith("/*", i):
            end = js.find("*/", i + 2)
            if end == -1:
                raise MinifyError(f"unterminated comment at offset {i}")
            i = end + 2
            continue
        if ch.isspace():
            i += 1
            continue
        if ch in "\"'":
            i = _skip_quoted(js, i, "string")
            prev = ")"
            continue
        if ch == "`":
            i, opened = _scan_template(js, i + 1)
            if opened:
                stack.append("${")
            prev = "{" if opened else ")"
            continue
        if ch == "/":
            if not prev or prev in REGEX_PRECEDERS or prev in REGEX_KEYWORDS:
                i = _skip_regex(js, i)
                prev = ")"
            else:
                prev = "/"
                i += 1
            continue
        if ch.isalnum() or ch in "_$":
            j = i
            while j < n and (js[j].isalnum() or js[j] in "_$"):
                j += 1
            prev = js[i:j]
            i = j
            continue
        if ch in "{([":
            stack.append(ch)
        elif ch == "}" and stack and stack[-1] == "${":
            stack.pop()
            i, opened = _scan_template(js, i + 1)
            if opened:
                stack.append("${")
            prev = "{" if opened else ")"
            continue
        elif ch in "})]":
            if not stack or stack.pop() != JS_PAIRS[ch]:
                raise MinifyError(f"unexpected '{ch}' at offset {i}")
        prev = ch
        i += 1
    if stack:
        raise MinifyError(f"unclosed '{stack[-1]}'")


def find_esbuild_bin() -> Optional[str]:
    try:
        out = subprocess.run(["esbuild", "--version"], capture_output=True, text=True)
        if out.returncode == 0:
            return "esbuild"
    except (FileNotFoundError, PermissionError):
        pass
    print("esbuild not found, minifying scripts with rjsmin")
    return None


def build_esbuild_cmd(esbuild: str, src: Path, dst: Path) -> list:
    # esbuild writes no source map unless asked for one
    return [
        esbuild,
        str(src),
        "--minify",
        f"--target={JS_TARGET}",
        f"--outfile={dst}",
        "--log-level=error",
    ]


def minify_script(src: Path, dst: Path, esbuild: Optional[str]) -> None:
    if esbuild:
        subprocess.run(build_esbuild_cmd(esbuild, src, dst), capture_output=True, text=True, check=True)
        return
    with open(src, "r", encoding="utf-8") as f:
        content = f.read()
    check_js_structure(content)
    with open(dst, "w", encoding="utf-8") as f:
        f.write(rjsmin.jsmin(content))


def process_scripts(config: BuildConfig, esbuild: Optional[str] = None) -> StageReport:
    print("Processing JS...")
    report = StageReport("scripts")
    start = time.perf_counter()
    for src in scan_tree(config.js_dir, config.excluded_dirs):
        if src.suffix != ".js":
            continue
        dst = config.target_for(src)
        ensure_dir(dst)
        try:
            minify_script(src, dst, esbuild)
            print(f"DONE  {rel(config, src)}")
        except Exception as e:
            detail = (getattr(e, "stderr", None) or "").strip() or e
            print(f"ERR   {rel(config, src)}: {detail}", file=sys.stderr)
            shutil.copyfile(src, dst)
            report.fallbacks += 1
        report.processed += 1
    report.elapsed = time.perf_counter() - start
    return report


# ---------- Static assets ----------

def copy_static(config: BuildConfig) -> StageReport:
    print("Copying static assets...")
    report = StageReport("static")
    start = time.perf_counter()
    for name in config.static_manifest:
        src = config.root / name
        dst = config.dist / name
        if not os.path.lexists(src):
            print(f"SKIP  {name}  not present")
            continue
        if stat.S_ISDIR(os.lstat(src).st_mode):
            shutil.copytree(src, dst, dirs_exist_ok=True)
        else:
            ensure_dir(dst)
            shutil.copyfile(src, dst)
        print(f"COPY  {name}")
        report.processed += 1
    report.elapsed = time.perf_counter() - start
    return report
