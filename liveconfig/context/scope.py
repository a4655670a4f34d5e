from __future__ import annotations

import logging
import threading
from typing import Optional

from liveconfig.common.logging import log_event
from liveconfig.context.container import ComponentContainer, RefreshScope

logger = logging.getLogger(__name__)


class ScopeClassifier:
    """
    Decides whether a component's lifecycle is owned by a managed-refresh
    scope (a registered `RefreshScope`), in which case the rebinder leaves it
    alone.

    The scope registry is scanned on first use and the result kept. If no
    `RefreshScope` is registered at that point, or the scan fails, nothing is
    ever excluded.
    """

    def __init__(self, container: ComponentContainer) -> None:
        self._container = container
        self._lock = threading.Lock()
        self._initialized = False
        self._refresh_scope: Optional[str] = None

    @property
    def refresh_scope_name(self) -> Optional[str]:
        self._ensure_scanned()
        return self._refresh_scope

    def _ensure_scanned(self) -> None:
        with self._lock:
            if self._initialized:
                return
        # The scan takes the container lock, so it must run outside `_lock`.
        # Concurrent first callers may both scan; the first published result is kept.
        found = self._scan()
        with self._lock:
            if not self._initialized:
                self._refresh_scope = found
                self._initialized = True

    def _scan(self) -> Optional[str]:
        try:
            for scope_name in self._container.registered_scope_names():
                if isinstance(self._container.get_registered_scope(scope_name), RefreshScope):
                    return scope_name
        except Exception:
            log_event(
                logger,
                "scope_classifier.scan_failed",
                severity="WARNING",
                exc_info=True,
                message="scope registry unavailable; treating all components as rebindable",
            )
        return None

    def is_excluded(self, name: Optional[str]) -> bool:
        self._ensure_scanned()
        if name is None or self._refresh_scope is None:
            return False
        try:
            if not self._container.contains_definition(name):
                return False
            return self._container.get_definition(name).scope == self._refresh_scope
        except Exception:
            log_event(
                logger,
                "scope_classifier.lookup_failed",
                severity="WARNING",
                exc_info=True,
                component=name,
            )
            return False
