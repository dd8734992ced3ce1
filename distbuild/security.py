"""Deployment files: Netlify-style _headers and .well-known/security.txt."""

from __future__ import annotations

import time

from .config import BuildConfig
from .models import StageReport

SECURITY_CONTACT = "mailto:judextine28@gmail.com"
SECURITY_EXPIRES = "2026-12-31T23:59:59Z"

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com https://assets.calendly.com",
    "style-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com https://assets.calendly.com",
    "img-src 'self' data: https://assets.calendly.com",
    "font-src 'self' https://cdnjs.cloudflare.com",
    "connect-src 'self'",
    "media-src 'self'",
    "object-src 'none'",
    "frame-src https://calendly.com",
]) + ";"

HEADERS = [
    ("X-Frame-Options", "SAMEORIGIN"),
    ("X-Content-Type-Options", "nosniff"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
    ("Permissions-Policy", "geolocation=(self), microphone=()"),
    ("Content-Security-Policy", CONTENT_SECURITY_POLICY),
]


def render_headers() -> str:
    lines = ["/*"]
    lines += [f"  {name}: {value}" for name, value in HEADERS]
    return "\n".join(lines) + "\n"


def render_security_txt() -> str:
    return f"Contact: {SECURITY_CONTACT}\nExpires: {SECURITY_EXPIRES}\n"


def write_security_configs(config: BuildConfig) -> StageReport:
    print("Writing security configs...")
    report = StageReport("security")
    start = time.perf_counter()

    well_known = config.dist / ".well-known"
    well_known.mkdir(parents=True, exist_ok=True)

    headers_path = config.dist / "_headers"
    with open(headers_path, "w", encoding="utf-8") as f:
        f.write(render_headers())

    with open(well_known / "security.txt", "w", encoding="utf-8") as f:
        f.write(render_security_txt())

    print("DONE  _headers, .well-known/security.txt")
    report.processed = 2
    report.elapsed = time.perf_counter() - start
    return report
