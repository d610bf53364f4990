"""Readings the watcher takes from the application it is embedded in."""

from __future__ import annotations

import hashlib
import json
import sys
from collections.abc import Callable, Iterable

import psutil

from perfwatch.core.config import settings
from perfwatch.core.security import sanitize_key


def hash_active_plugins(plugins: Iterable[str]) -> str:
    """sha256 over the sorted plugin list, so ordering never changes the hash."""
    ordered = sorted(str(p) for p in plugins)
    return hashlib.sha256(json.dumps(ordered, separators=(",", ":")).encode("utf-8")).hexdigest()


def read_peak_memory_bytes() -> int:
    """Process memory high-water mark.

    POSIX reports it through getrusage (KiB on Linux, bytes on macOS), Windows
    through psutil's peak_wset. Current RSS is the last resort.
    """
    if sys.platform != "win32":
        import resource

        max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        if max_rss > 0:
            return int(max_rss if sys.platform == "darwin" else max_rss * 1024)

    try:
        info = psutil.Process().memory_info()
    except psutil.Error:
        return 0
    peak = getattr(info, "peak_wset", None)  # Windows only
    return int(peak if peak else info.rss)


class HostEnvironment:
    """Active plugin set, theme, query-log capability and memory reading.

    Defaults come from process settings; hosts and tests can pass their own values.
    """

    def __init__(
        self,
        active_plugins: Iterable[str] | None = None,
        theme: str | None = None,
        query_log_enabled: bool | None = None,
        memory_reader: Callable[[], int] | None = None,
    ):
        self._active_plugins = list(active_plugins) if active_plugins is not None else None
        self._theme = theme
        self._query_log_enabled = query_log_enabled
        self._memory_reader = memory_reader or read_peak_memory_bytes

    @property
    def active_plugins(self) -> list[str]:
        if self._active_plugins is not None:
            return self._active_plugins
        return settings.active_plugins

    @property
    def plugins_hash(self) -> str:
        return hash_active_plugins(self.active_plugins)

    @property
    def theme_slug(self) -> str:
        theme = self._theme if self._theme is not None else settings.PERF_ACTIVE_THEME
        return sanitize_key(theme) if theme else ""

    @property
    def query_log_enabled(self) -> bool:
        if self._query_log_enabled is not None:
            return self._query_log_enabled
        return settings.PERF_QUERY_LOG_ENABLED

    def peak_memory_bytes(self) -> int:
        return max(0, int(self._memory_reader()))
