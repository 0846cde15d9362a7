"""Application entry point for docsynth-realtime.

Exit Codes:
    0: Clean shutdown
    1: Configuration, authentication or backend error
    2: Usage error
"""

from __future__ import annotations

from docsynth_realtime.app.cli import cli

__all__ = ["main"]


def main() -> None:
    """Run the click command group; exits the interpreter when done."""
    cli(prog_name="docsynth-realtime")


if __name__ == "__main__":
    main()
