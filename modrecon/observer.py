"""Progress and warning side channel for the reconstruction passes."""

from __future__ import annotations

from typing import Callable, List, Optional

from .logging import get_logger

MessageCallback = Callable[[str], None]


class Observer:
    """Receives progress and warning messages emitted during a run.

    Both callbacks are optional. Messages also go to the ``modrecon`` logger,
    progress at DEBUG and warnings at WARNING. Nothing an observer does can
    change a resolution.
    """

    def __init__(
        self,
        on_progress: Optional[MessageCallback] = None,
        on_warning: Optional[MessageCallback] = None,
    ) -> None:
        self.on_progress = on_progress
        self.on_warning = on_warning
        self.logger = get_logger("observer")

    def progress(self, message: str) -> None:
        self.logger.debug(message)
        if self.on_progress is not None:
            self.on_progress(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)
        if self.on_warning is not None:
            self.on_warning(message)


class WarningRecorder(Observer):
    """Keeps the warnings of one pass for its result while relaying everything."""

    def __init__(self, observer: Optional[Observer] = None) -> None:
        super().__init__()
        self.inner = observer or Observer()
        self.warnings: List[str] = []

    def progress(self, message: str) -> None:
        self.inner.progress(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)
        self.inner.warning(message)


__all__ = ["MessageCallback", "Observer", "WarningRecorder"]
