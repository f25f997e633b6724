"""
Install progress tracking.

An ``InstallProgress`` is created for every dispatched install and lives in
the ``ProgressRegistry`` until a status query observes it as finished. The
background install reports into it through the progress-sink methods
(``start``/``set``/``set_total``/``finished``) and completes it exactly once
with ``finish``.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from webdm.domain.errors import InstallInProgressError
from webdm.domain.models import PackageStatus

logger = logging.getLogger(__name__)


class InstallProgress:
    """Mutable progress record for one in-flight install."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._current = 0.0
        self._total = 0.0
        self._status = PackageStatus.INSTALLING
        self._error: Optional[BaseException] = None

    # -- progress sink -----------------------------------------------------

    def start(self, label: str, total: float) -> None:
        logger.debug(f"Install of {self.name}: {label} ({total} bytes)")
        with self._lock:
            self._total = float(total)
            self._current = 0.0

    def set(self, current: float) -> None:
        with self._lock:
            self._current = float(current)

    def set_total(self, total: float) -> None:
        with self._lock:
            self._total = float(total)

    def finished(self) -> None:
        """The current step is complete; does not complete the install."""
        with self._lock:
            self._current = self._total

    # -- completion ----------------------------------------------------------

    def finish(self, error: Optional[BaseException] = None) -> None:
        """
        Deliver the terminal result of the install.

        Can only be called once; the tracker is consumable afterwards.
        """
        with self._lock:
            if self._done.is_set():
                raise RuntimeError(f"install progress for {self.name} already finished")
            self._error = error
            self._status = PackageStatus.ERROR if error is not None else PackageStatus.INSTALLED
            if error is None:
                self._current = self._total
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    # -- readers -------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def status(self) -> PackageStatus:
        with self._lock:
            return self._status

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error

    def progress(self) -> float:
        """Fraction of the current step completed, clamped to [0, 1]."""
        with self._lock:
            if self._total <= 0:
                return 0.0
            return min(max(self._current / self._total, 0.0), 1.0)


class ProgressRegistry(ABC):
    """
    Table of in-flight installs keyed by package name.

    Implementations must be safe for concurrent use by the dispatching code,
    the background installs and any number of status queries.
    """

    @abstractmethod
    def add(self, name: str) -> InstallProgress:
        """Register a new tracker; raises InstallInProgressError if one exists."""
        pass

    @abstractmethod
    def get(self, name: str) -> Optional[InstallProgress]:
        pass

    @abstractmethod
    def remove(self, name: str, tracker: Optional[InstallProgress] = None) -> Optional[InstallProgress]:
        """
        Remove the tracker for ``name`` and return it.

        When ``tracker`` is given, only remove if it is still the registered
        tracker. Returns None if nothing was removed.
        """
        pass


class InMemoryProgressRegistry(ProgressRegistry):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._trackers: Dict[str, InstallProgress] = {}

    def add(self, name: str) -> InstallProgress:
        with self._lock:
            if name in self._trackers:
                raise InstallInProgressError(name)
            tracker = InstallProgress(name)
            self._trackers[name] = tracker
            return tracker

    def get(self, name: str) -> Optional[InstallProgress]:
        with self._lock:
            return self._trackers.get(name)

    def remove(self, name: str, tracker: Optional[InstallProgress] = None) -> Optional[InstallProgress]:
        with self._lock:
            current = self._trackers.get(name)
            if current is None:
                return None
            if tracker is not None and current is not tracker:
                return None
            return self._trackers.pop(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)
