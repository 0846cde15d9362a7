"""Realtime WebSocket layer: transport, routing, connection lifecycle."""

from docsynth_realtime.realtime.connection import AUTH_REJECTED_ERROR, ConnectionManager
from docsynth_realtime.realtime.hub import RealtimeHub
from docsynth_realtime.realtime.jobs import JobProgressTracker, job_channel
from docsynth_realtime.realtime.router import FrameDecodeError, MessageRouter, encode_frame, parse_frame
from docsynth_realtime.realtime.transport import (
    AUTH_REJECTED_CLOSE_CODE,
    AIOHTTPTransport,
    AIOHTTPTransportFactory,
    build_socket_url,
)

__all__ = [
    "AIOHTTPTransport",
    "AIOHTTPTransportFactory",
    "AUTH_REJECTED_CLOSE_CODE",
    "AUTH_REJECTED_ERROR",
    "ConnectionManager",
    "FrameDecodeError",
    "JobProgressTracker",
    "MessageRouter",
    "RealtimeHub",
    "build_socket_url",
    "encode_frame",
    "job_channel",
    "parse_frame",
]
