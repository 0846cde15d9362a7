"""Application layer: composition root and command-line interface."""

from __future__ import annotations

from docsynth_realtime.app.cli import cli
from docsynth_realtime.app.runner import ApplicationRunner

__all__ = [
    "ApplicationRunner",
    "cli",
]
