"""
Layered property environment with change publication.

Property sources, highest precedence first:

1. in-memory overrides (`set_properties`, e.g. from the admin API)
2. OS environment variables, using relaxed names: `cfg-a.max-retries` is read
   from `CFG_A_MAX_RETRIES` (or `<PREFIX>_CFG_A_MAX_RETRIES`)
3. YAML/JSON files, later files win

Keys are compared in canonical form (see `canonical_key`). Every mutation
that changes at least one key publishes one `environment.changed` envelope
whose payload lists the changed keys. `reload_files` always publishes, even
when nothing changed.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Set

import yaml

from liveconfig.common.logging import log_event
from liveconfig.common.ops_metrics import REGISTRY, MetricRegistry, environment_changes_counter
from liveconfig.context.properties import canonical_key
from liveconfig.messaging.envelope import ENVIRONMENT_CHANGED, EventEnvelope
from liveconfig.messaging.local import InMemoryEventBus

logger = logging.getLogger(__name__)

_MISSING = object()


def flatten(data: Mapping[str, Any], *, parent: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into canonical dotted keys. Lists stay values."""
    out: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = canonical_key(f"{parent}.{raw_key}" if parent else str(raw_key))
        if not key:
            continue
        if isinstance(value, Mapping):
            nested = flatten(value, parent=key)
            if nested:
                out.update(nested)
            else:
                out[key] = {}
        else:
            out[key] = value
    return out


def _read_config_file(p: Path) -> Dict[str, Any]:
    raw = p.read_text(encoding="utf-8")
    if not raw.strip():
        return {}
    data = json.loads(raw) if p.suffix.lower() == ".json" else yaml.safe_load(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config file must be a mapping: {p}")
    return data


def _subtree(flat: Mapping[str, Any], prefix: str) -> Dict[str, Any]:
    lead = prefix + "."
    tree: Dict[str, Any] = {}
    for key, value in flat.items():
        if not key.startswith(lead):
            continue
        node = tree
        parts = key[len(lead) :].split(".")
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return tree


def _deep_merge(base: Dict[str, Any], top: Mapping[str, Any]) -> Dict[str, Any]:
    for k, v in top.items():
        if isinstance(v, Mapping) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = dict(v) if isinstance(v, Mapping) else v
    return base


class Environment:
    def __init__(
        self,
        *,
        bus: Optional[InMemoryEventBus] = None,
        files: Iterable[Path | str] = (),
        env_prefix: str = "",
        environ: Optional[MutableMapping[str, str]] = None,
        source: str = "environment",
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._changes_total = environment_changes_counter(metrics if metrics is not None else REGISTRY)
        self._bus = bus
        self._source = source
        self._env_prefix = str(env_prefix or "").strip().strip("_").upper()
        self._environ = environ if environ is not None else os.environ
        self._files: List[Path] = [Path(f) for f in files]
        self._overrides: Dict[str, Any] = {}
        self._file_values: Dict[str, Any] = self._load_files()

    # ---- reads ----

    def _env_var_name(self, key: str) -> str:
        name = key.upper().replace(".", "_").replace("-", "_")
        return f"{self._env_prefix}_{name}" if self._env_prefix else name

    def get_property(self, key: str, default: Any = None) -> Any:
        """
        Return the value for `key`. When no source holds `key` itself but some
        hold keys below it, the merged subtree is returned as a dict.
        """
        ckey = canonical_key(key)
        if not ckey:
            return default
        with self._lock:
            if ckey in self._overrides:
                return self._overrides[ckey]
            env_name = self._env_var_name(ckey)
            if env_name in self._environ:
                return self._environ[env_name]
            if ckey in self._file_values:
                return self._file_values[ckey]
            tree = _deep_merge(_subtree(self._file_values, ckey), _subtree(self._overrides, ckey))
        return tree if tree else default

    def contains_property(self, key: str) -> bool:
        return self.get_property(key, _MISSING) is not _MISSING

    def snapshot(self) -> Dict[str, Any]:
        """Merged file + override values (OS environment variables excluded)."""
        with self._lock:
            merged = dict(self._file_values)
            merged.update(self._overrides)
        return dict(sorted(merged.items()))

    @property
    def files(self) -> List[Path]:
        with self._lock:
            return list(self._files)

    # ---- writes ----

    def set_properties(
        self, values: Mapping[str, Any], *, source: Optional[str] = None, publish: bool = True
    ) -> Set[str]:
        """
        Set in-memory overrides. Nested mappings are flattened. Publishes one
        change event when any value actually changed; returns the changed keys.

        With `publish=False` the overrides are staged silently; a caller
        batching several updates announces them later with `publish_change`.
        """
        flat = flatten(values)
        with self._lock:
            changed = {k for k, v in flat.items() if self._overrides.get(k, _MISSING) != v}
            self._overrides.update(flat)
        if changed and publish:
            self.publish_change(changed, source=source)
        return changed

    def remove_properties(
        self, keys: Iterable[str], *, source: Optional[str] = None, publish: bool = True
    ) -> Set[str]:
        removed: Set[str] = set()
        with self._lock:
            for key in keys:
                ckey = canonical_key(key)
                if ckey in self._overrides:
                    del self._overrides[ckey]
                    removed.add(ckey)
        if removed and publish:
            self.publish_change(removed, source=source)
        return removed

    def add_file(self, path: Path | str) -> None:
        with self._lock:
            self._files.append(Path(path))

    def reload_files(self, *, source: Optional[str] = None) -> Set[str]:
        """
        Re-read every configured file. Always publishes a change event (an
        explicit reload is an external trigger); returns the changed keys.
        """
        fresh = self._load_files()
        with self._lock:
            previous = self._file_values
            self._file_values = fresh
        changed = {k for k in set(previous) | set(fresh) if previous.get(k, _MISSING) != fresh.get(k, _MISSING)}
        self.publish_change(changed, source=source)
        return changed

    def _load_files(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in self.files:
            if not p.exists():
                log_event(logger, "environment.file_missing", severity="WARNING", path=str(p))
                continue
            merged.update(flatten(_read_config_file(p)))
        return merged

    def publish_change(self, keys: Iterable[str], *, source: Optional[str] = None) -> Optional[EventEnvelope]:
        changed = sorted(set(keys))
        self._changes_total.inc()
        log_event(logger, ENVIRONMENT_CHANGED, keys=changed, source=source or self._source)
        if self._bus is None:
            return None
        return self._bus.publish(
            topic=ENVIRONMENT_CHANGED,
            source=source or self._source,
            payload={"keys": changed},
        )
