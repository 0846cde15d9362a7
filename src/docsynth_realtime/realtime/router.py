"""Inbound frame decoding and listener fan-out.

The router is the single dispatch point for frames read off the socket.
Every registered listener receives every frame, in registration order;
listeners filter by ``type``/``channel`` themselves.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from docsynth_realtime.types import InboundMessage, MessageListener
from docsynth_realtime.utils.logging import get_logger, log_with_context
from docsynth_realtime.utils.sanitization import sanitize_text

__all__ = ["FrameDecodeError", "MessageRouter", "encode_frame", "parse_frame"]

# Longest frame excerpt included in a malformed-frame warning
_PREVIEW_LENGTH = 200


class FrameDecodeError(ValueError):
    """Raised when a text frame is not a valid message envelope."""


def parse_frame(raw: str) -> InboundMessage:
    """Decode one JSON text frame into an InboundMessage.

    Args:
        raw: Frame text as received from the transport

    Returns:
        Decoded message

    Raises:
        FrameDecodeError: If the frame is not JSON, not an object, or lacks a string ``type``
    """
    try:
        decoded: object = json.loads(raw)  # pyright: ignore[reportAny]  # JSON boundary
    except (ValueError, RecursionError, TypeError) as exc:
        # JSONDecodeError, oversized integer literals and deep nesting
        raise FrameDecodeError(f"Frame is not valid JSON: {exc}") from exc

    if not isinstance(decoded, dict):
        raise FrameDecodeError(f"Frame must be a JSON object, got {type(decoded).__name__}")

    message_type = decoded.get("type")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
    if not isinstance(message_type, str) or not message_type:
        raise FrameDecodeError("Frame is missing a string 'type' field")

    channel = decoded.get("channel")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
    return InboundMessage(
        type=message_type,
        data=decoded.get("data"),  # pyright: ignore[reportUnknownMemberType]
        channel=channel if isinstance(channel, str) else None,
    )


def encode_frame(payload: object) -> str:
    """Encode an outbound payload as a JSON text frame."""
    return json.dumps(payload, separators=(",", ":"))


class MessageRouter:
    """Deliver decoded frames to every registered listener."""

    def __init__(self, *, logger_obj: logging.Logger | None = None) -> None:
        self._listeners: list[MessageListener] = []
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def listener_count(self) -> int:
        """Number of registered listeners."""
        return len(self._listeners)

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Register a listener for every inbound frame.

        Args:
            listener: Callable receiving each InboundMessage

        Returns:
            Zero-argument callable that removes the listener (safe to call twice)
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def dispatch_raw(self, raw: str) -> InboundMessage | None:
        """Decode a text frame and dispatch it.

        Malformed frames are logged and dropped.

        Args:
            raw: Frame text

        Returns:
            The dispatched message, or None if the frame was dropped
        """
        try:
            message = parse_frame(raw)
        except FrameDecodeError as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Dropping malformed frame",
                extra={
                    "reason": str(exc),
                    "frame_preview": sanitize_text(raw[:_PREVIEW_LENGTH]),
                },
            )
            return None

        self.dispatch(message)
        return message

    def dispatch(self, message: InboundMessage) -> None:
        """Deliver a message to all listeners.

        A listener that raises is logged and skipped; the remaining
        listeners still receive the message.

        Args:
            message: Decoded inbound message
        """
        # Listeners may unregister themselves while handling a frame
        for listener in tuple(self._listeners):
            try:
                listener(message)
            except Exception:
                self._logger.exception(
                    "Listener failed while handling frame",
                    extra={"message_type": message.type, "channel": message.channel},
                )
