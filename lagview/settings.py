"""Hierarchical, case-insensitive configuration store with dotted keys."""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Mapping
from typing import Any

_MISSING = object()
_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_TRUE_OR_FALSE = _TRUE_WORDS | {"0", "f", "F", "FALSE", "false", "False"}


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k).lower(): _normalize(v) for k, v in value.items()}
    return value


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return list(value)
    return value


def _merge(base: dict, top: dict) -> dict:
    merged = _copy(base)
    for key, value in top.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = _copy(value)
    return merged


def _lookup(tree: dict, parts: list[str]) -> Any:
    node: Any = tree
    for part in parts:
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _store(tree: dict, parts: list[str], value: Any) -> None:
    node = tree
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[parts[-1]] = _normalize(value)


def _to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return ""


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = re.sub(r"\.0+$", "", value.strip())
        try:
            return int(text, 0)
        except ValueError:
            return 0
    return 0


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip()
        return text in _TRUE_WORDS if text in _TRUE_OR_FALSE else False
    return False


class Settings:
    """Configuration values addressed by dotted keys, with an override and a default layer."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._overrides: dict = {}
        self._defaults: dict = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    @staticmethod
    def _parts(key: str) -> list[str]:
        return key.lower().split(".")

    def set(self, key: str, value: Any) -> None:
        """Set a value, taking precedence over any default."""
        with self._lock:
            _store(self._overrides, self._parts(key), value)

    def set_default(self, key: str, value: Any) -> None:
        """Set the value used when nothing else is set for the key."""
        with self._lock:
            _store(self._defaults, self._parts(key), value)

    def is_set(self, key: str) -> bool:
        """Tell whether the key, or anything beneath it, has a value."""
        return self.get(key) is not None

    def get(self, key: str) -> Any:
        """Return the raw value for a key, or None when it is not set."""
        parts = self._parts(key)
        with self._lock:
            override = _lookup(self._overrides, parts)
            default = _lookup(self._defaults, parts)
            if isinstance(override, dict) and isinstance(default, dict):
                return _merge(default, override)
            if override is not _MISSING:
                return _copy(override)
            if default is not _MISSING:
                return _copy(default)
            return None

    def get_string(self, key: str) -> str:
        return _to_string(self.get(key))

    def get_int(self, key: str) -> int:
        return _to_int(self.get(key))

    def get_bool(self, key: str) -> bool:
        return _to_bool(self.get(key))

    def get_string_slice(self, key: str) -> list[str]:
        value = self.get(key)
        if isinstance(value, str):
            return value.split()
        if isinstance(value, (list, tuple)):
            return [_to_string(item) for item in value]
        return []

    def get_string_map(self, key: str) -> dict[str, Any]:
        value = self.get(key)
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return {}
            if isinstance(parsed, dict):
                return {str(k): v for k, v in parsed.items()}
        return {}

    def get_string_map_string(self, key: str) -> dict[str, str]:
        return {name: _to_string(value) for name, value in self.get_string_map(key).items()}

    def reset(self) -> None:
        """Forget every value and default."""
        with self._lock:
            self._overrides = {}
            self._defaults = {}