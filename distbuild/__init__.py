"""Static-site asset build: optimised images, minified CSS/JS/HTML, deploy headers."""

from .build import main, run_build
from .config import BuildConfig

__all__ = ["BuildConfig", "main", "run_build"]
