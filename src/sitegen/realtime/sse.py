"""Server-Sent Events Framing
===========================

Encoder and incremental decoder for the ``text/event-stream`` wire format.

Event block::

    event: credits
    data: {"remaining":90}
    <blank line>

Decoding tolerates LF, CRLF and mixed line endings, partial frames split
across reads, and producers that push raw markup without any framing.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

DEFAULT_EVENT = 'message'
BARE_MARKUP_EVENT = 'data'
BARE_MARKUP_THRESHOLD = 64

_BLOCK_SEPARATOR = re.compile(r'\r?\n\r?\n')
_LINE_SEPARATOR = re.compile(r'\r\n|\r|\n')
_FIELD_LINE = re.compile(r'^(?:event|data|id|retry):', re.MULTILINE)


@dataclass
class SSEEvent:
    event: str
    data: Any
    id: Optional[str] = None

    def to_dict(self):
        result = {'event': self.event, 'data': self.data}
        if self.id is not None:
            result['id'] = self.id
        return result


def format_sse_event(event: str, data: Any = None, event_id: Optional[str] = None) -> str:
    """Encode one event block.

    Strings are sent verbatim (one ``data:`` line per line of text); any
    other value is sent as compact JSON.
    """
    if data is None:
        payload = '{}'
    elif isinstance(data, str):
        payload = data
    else:
        payload = json.dumps(data, separators=(',', ':'), ensure_ascii=False)

    lines = [f"event: {event}"]
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.extend(f"data: {line}" for line in _LINE_SEPARATOR.split(payload))
    return '\n'.join(lines) + '\n\n'


def _decode_data(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_sse_block(block: str) -> Optional[SSEEvent]:
    """Decode a single blank-line-free block; None for comment-only blocks."""
    event_type = DEFAULT_EVENT
    event_id = None
    data_lines: List[str] = []
    seen_field = False

    for line in _LINE_SEPARATOR.split(block):
        if not line or line.startswith(':'):
            continue
        field, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]
        if field == 'event':
            event_type = value or DEFAULT_EVENT
            seen_field = True
        elif field == 'data':
            data_lines.append(value)
            seen_field = True
        elif field == 'id':
            event_id = value
            seen_field = True

    if not seen_field:
        return None
    return SSEEvent(event=event_type, data=_decode_data('\n'.join(data_lines)), id=event_id)


def _is_comment(block: str) -> bool:
    lines = [line for line in _LINE_SEPARATOR.split(block) if line]
    return bool(lines) and all(line.startswith(':') for line in lines)


def parse_sse_chunk(buffer: str) -> Tuple[List[SSEEvent], str]:
    """Split ``buffer`` into complete events and the unterminated remainder.

    Blocks without any field line that carry markup are kept together with
    the blank lines between them and surfaced as one opaque ``data`` event
    once a framed event follows. A run still open at the end of the buffer is
    returned as part of the remainder.

    Returns:
        Tuple of (events in arrival order, remainder to prepend to the next read)
    """
    events: List[SSEEvent] = []
    start = 0
    run_start: Optional[int] = None
    run_end = 0
    for match in _BLOCK_SEPARATOR.finditer(buffer):
        block = buffer[start:match.start()]
        event = parse_sse_block(block)
        if event is None and not _is_comment(block) and (run_start is not None or '<' in block):
            if run_start is None:
                run_start = start
            if block:
                run_end = match.start()
        else:
            if run_start is not None:
                events.append(SSEEvent(event=BARE_MARKUP_EVENT, data=buffer[run_start:run_end]))
                run_start = None
            if event is not None:
                events.append(event)
        start = match.end()

    if run_start is not None:
        return events, buffer[run_start:]
    return events, buffer[start:]


class SSEStreamParser:
    """Incremental decoder fed with arbitrary slices of an event stream.

    Usage:
        parser = SSEStreamParser()
        for piece in transport:
            for event in parser.feed(piece):
                handle(event)
        for event in parser.flush():
            handle(event)
    """

    def __init__(self, bare_markup_threshold: int = BARE_MARKUP_THRESHOLD):
        self.bare_markup_threshold = bare_markup_threshold
        self._buffer = ''

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, text: str) -> List[SSEEvent]:
        events, self._buffer = parse_sse_chunk(self._buffer + text)
        if self._is_bare_markup(self._buffer):
            events.append(SSEEvent(event=BARE_MARKUP_EVENT, data=self._buffer))
            self._buffer = ''
        return events

    def flush(self) -> List[SSEEvent]:
        """Decode whatever is left once the transport has closed."""
        remainder, self._buffer = self._buffer, ''
        if not remainder.strip():
            return []
        events, tail = parse_sse_chunk(remainder + '\n\n')
        if tail:
            # an open markup run always reaches the end of the padded buffer
            events.append(SSEEvent(event=BARE_MARKUP_EVENT, data=tail[:-2]))
        return events

    def _is_bare_markup(self, text: str) -> bool:
        return (
            len(text) > self.bare_markup_threshold
            and '<' in text
            and _FIELD_LINE.search(text) is None
        )
