"""Observer capability the runtime reports through."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Protocol, Tuple, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Observer(Protocol):
    """Receives observability events.

    ``measurements`` holds numbers (durations, counts, token totals);
    ``metadata`` holds identifiers and labels.
    """

    def emit(
        self, event: str, measurements: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> None:
        """Handle one event."""


class NullObserver:
    """Discards every event."""

    def emit(
        self, event: str, measurements: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> None:
        return None


class LoggingObserver:
    """Renders events as log records.

    Warnings and errors are logged at WARNING, exceptions at ERROR and
    everything else at ``level``.

    Args:
        level: Log level for routine events.
        log: Logger to write to; defaults to this module's logger.
    """

    def __init__(self, level: int = logging.DEBUG, log: logging.Logger = logger) -> None:
        self._level = level
        self._log = log

    def emit(
        self, event: str, measurements: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> None:
        if event.endswith(".exception"):
            level = logging.ERROR
        elif event.endswith((".warning", ".error", ".retry")):
            level = logging.WARNING
        else:
            level = self._level
        if not self._log.isEnabledFor(level):
            return
        self._log.log(
            level,
            "%s %s",
            event,
            dict(measurements),
            extra={
                "event": event,
                "measurements": dict(measurements),
                "agent": metadata.get("agent"),
                "provider": metadata.get("provider"),
                "client": metadata.get("client"),
            },
        )


class CompositeObserver:
    """Fans events out to several observers; one failing observer never blocks the rest."""

    def __init__(self, observers: Iterable[Observer]) -> None:
        self._observers: List[Observer] = list(observers)

    def emit(
        self, event: str, measurements: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> None:
        for observer in self._observers:
            try:
                observer.emit(event, measurements, metadata)
            except Exception:
                logger.exception("Observer failed", extra={"event": event})


class RecordingObserver:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any], Dict[str, Any]]] = []

    def emit(
        self, event: str, measurements: Mapping[str, Any], metadata: Mapping[str, Any]
    ) -> None:
        self.events.append((event, dict(measurements), dict(metadata)))

    def names(self) -> List[str]:
        return [name for name, _, _ in self.events]

    def named(self, event: str) -> List[Tuple[str, Dict[str, Any], Dict[str, Any]]]:
        return [entry for entry in self.events if entry[0] == event]
