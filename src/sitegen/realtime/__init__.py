"""Realtime transport: server-sent event framing."""

from .sse import SSEEvent, SSEStreamParser, format_sse_event, parse_sse_chunk

__all__ = ['SSEEvent', 'SSEStreamParser', 'format_sse_event', 'parse_sse_chunk']
