"""Data models shared by the build stages."""

from __future__ import annotations

from dataclasses import dataclass


class BuildError(RuntimeError):
    """A stage cannot continue; the whole build is abandoned."""


@dataclass
class StageReport:
    """What a stage did: files handled, files that fell back to a plain copy."""

    name: str
    processed: int = 0
    fallbacks: int = 0
    elapsed: float = 0.0

    def summary(self) -> str:
        line = f"{self.name}: {self.processed} file(s) in {self.elapsed:.2f}s"
        if self.fallbacks:
            line += f", {self.fallbacks} copied unminified"
        return line
