"""Keyboard input handling."""

from docsynth_realtime.input.shortcuts import DEFAULT_BINDINGS, KeySequenceMachine, SequenceState

__all__ = ["DEFAULT_BINDINGS", "KeySequenceMachine", "SequenceState"]
