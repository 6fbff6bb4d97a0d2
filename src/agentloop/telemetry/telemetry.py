"""Event emission helper bound to one agent invocation."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional

from agentloop.domain.error_sanitizer import sanitize_text
from agentloop.telemetry.observer import NullObserver, Observer

logger = logging.getLogger(__name__)


@dataclass
class SpanScope:
    """Mutable bag a span body fills in for its stop event."""

    measurements: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class Telemetry:
    """Emits events with bound base metadata and a timestamp.

    Observer faults are logged and swallowed so reporting can never break the
    loop.

    Args:
        observer: Destination for events.
        metadata: Base metadata copied into every event (agent, provider, client).
    """

    def __init__(
        self, observer: Optional[Observer] = None, metadata: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._observer = observer or NullObserver()
        self._metadata: Dict[str, Any] = dict(metadata or {})

    def emit(
        self, event: str, measurements: Optional[Mapping[str, Any]] = None, **metadata: Any
    ) -> None:
        payload = dict(self._metadata)
        payload.update(metadata)
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        try:
            self._observer.emit(event, dict(measurements or {}), payload)
        except Exception:
            logger.exception("Observer failed", extra={"event": event})

    @contextmanager
    def span(self, name: str, **metadata: Any) -> Iterator[SpanScope]:
        """Bracket a stage with ``<name>.start`` and ``<name>.stop`` or ``<name>.exception``.

        A body abandoned through ``GeneratorExit`` (a stream closed early) still
        emits ``<name>.stop`` with ``status="cancelled"``.
        """

        scope = SpanScope()
        started = time.perf_counter()
        self.emit(f"{name}.start", {"system_time": time.time()}, **metadata)
        try:
            yield scope
        except GeneratorExit:
            self.emit(
                f"{name}.stop",
                {"duration_ms": _elapsed_ms(started), **scope.measurements},
                **{**metadata, **scope.metadata, "status": "cancelled"},
            )
            raise
        except Exception as exc:
            self.emit(
                f"{name}.exception",
                {"duration_ms": _elapsed_ms(started)},
                **metadata,
                kind=exc.__class__.__name__,
                reason=sanitize_text(str(exc)),
            )
            raise
        else:
            self.emit(
                f"{name}.stop",
                {"duration_ms": _elapsed_ms(started), **scope.measurements},
                **{**metadata, **scope.metadata},
            )


def _elapsed_ms(started: float) -> float:
    return max(0.0, (time.perf_counter() - started) * 1000.0)
