"""
Downstream event sinks.

A sink is any coroutine function accepting an
:class:`~alphaess.src.models.OutboundEvent`. The daemon emits one JSON line
per event on stdout so that a host process can consume the stream.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import json
import sys
from collections.abc import Awaitable, Callable
from typing import TextIO

from alphaess.src.models import OutboundEvent

EventSink = Callable[[OutboundEvent], Awaitable[None]]


def json_line_sink(stream: TextIO | None = None) -> EventSink:
    """Return a sink writing each event as one JSON line to *stream*.

    Args:
        stream: Target text stream. Defaults to ``sys.stdout`` at emit time.
    """

    async def _emit(event: OutboundEvent) -> None:
        out = stream if stream is not None else sys.stdout
        out.write(json.dumps(event.to_message()) + "\n")
        out.flush()

    return _emit
