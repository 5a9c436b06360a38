"""FlipMatch config — ``config.yaml`` sections with ``FLIPMATCH_*`` overrides.

The file holds one section per engine concern::

    layout     board layout cache (tolerance, key prefix, baseline size)
    validator  match-rate cutoffs
    board      board memory (unknown-identity sentinel)
    store      key-value backend (Redis URL, TTL)
    session    host loop pacing, reports, replay input

Each section is reached through a typed accessor on :data:`cfg`::

    from utils.flip_config import cfg

    cfg.layout.get_int("position_tolerance", 30)
    cfg.validator.get_float("match_threshold", 0.8)
    cfg.session.get_str("replay_file")

``FLIPMATCH_<SECTION>_<KEY>`` (e.g. ``FLIPMATCH_LAYOUT_POSITION_TOLERANCE``)
always wins over the file.  A value that cannot be parsed as the requested
type is logged and skipped, falling through to the next source.

``FLIPMATCH_CONFIG_FILE`` points the loader at another file.  Loading is
lazy (first access) and thread-safe.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

import yaml

_log = logging.getLogger("flipmatch.config")

SECTIONS = ("layout", "validator", "board", "store", "session")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

T = TypeVar("T")


# ── Value parsers (``None`` = unusable) ─────────────────────────────

def _to_str(value: Any) -> str | None:
    if isinstance(value, (dict, list)):
        return None
    return str(value).strip()


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return None


def _find_config_path() -> Path:
    """``FLIPMATCH_CONFIG_FILE``, else the first ``config.yaml`` above this module."""
    env_path = os.getenv("FLIPMATCH_CONFIG_FILE", "").strip()
    if env_path:
        return Path(env_path)

    start = Path(__file__).resolve().parent
    for ancestor in [start, start.parent, start.parent.parent]:
        candidate = ancestor / "config.yaml"
        if candidate.exists():
            return candidate

    return start.parent / "config.yaml"


class ConfigSection:
    """Typed view of one top-level section."""

    __slots__ = ("_config", "name")

    def __init__(self, config: FlipConfig, name: str) -> None:
        self._config = config
        self.name = name

    def env_key(self, key: str) -> str:
        return f"FLIPMATCH_{self.name.upper()}_{key.upper()}"

    def get_str(self, key: str, default: str = "") -> str:
        return self._config.lookup(self, key, _to_str, default)

    def get_int(self, key: str, default: int = 0) -> int:
        return self._config.lookup(self, key, _to_int, default)

    def get_float(self, key: str, default: float = 0.0) -> float:
        return self._config.lookup(self, key, _to_float, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return self._config.lookup(self, key, _to_bool, default)

    def __repr__(self) -> str:
        return f"<ConfigSection {self.name}>"


class FlipConfig:
    """Loader for the FlipMatch ``config.yaml`` (``env > yaml > default``)."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._sections: dict[str, dict[str, Any]] = {}
        self._loaded = False
        self._lock = threading.Lock()
        self.layout = ConfigSection(self, "layout")
        self.validator = ConfigSection(self, "validator")
        self.board = ConfigSection(self, "board")
        self.store = ConfigSection(self, "store")
        self.session = ConfigSection(self, "session")

    @property
    def path(self) -> Path:
        return self._path or _find_config_path()

    # ── Loading ─────────────────────────────────────────────────────

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            self._sections = self._read()
            self._loaded = True

    def _read(self) -> dict[str, dict[str, Any]]:
        config_path = self.path
        if not config_path.exists():
            return {}
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            _log.warning("could not read %s (%s), using defaults", config_path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}

        sections: dict[str, dict[str, Any]] = {}
        for name, body in raw.items():
            if name not in SECTIONS:
                _log.warning("ignoring unknown section %r in %s", name, config_path)
            elif not isinstance(body, dict):
                _log.warning("section %r in %s is not a mapping", name, config_path)
            else:
                sections[name] = body
        return sections

    def reload(self) -> None:
        """Force a re-read of the file."""
        with self._lock:
            self._sections = self._read()
            self._loaded = True

    # ── Lookup ──────────────────────────────────────────────────────

    def lookup(
        self,
        section: ConfigSection,
        key: str,
        parse: Callable[[Any], T | None],
        default: T,
    ) -> T:
        env_key = section.env_key(key)
        env_val = os.getenv(env_key, "").strip()
        if env_val:
            parsed = parse(env_val)
            if parsed is not None:
                return parsed
            _log.warning("ignoring unparsable %s=%r", env_key, env_val)

        self._ensure_loaded()
        yaml_val = self._sections.get(section.name, {}).get(key)
        if yaml_val is not None:
            parsed = parse(yaml_val)
            if parsed is not None:
                return parsed
            _log.warning("ignoring unparsable %s.%s=%r", section.name, key, yaml_val)
        return default

    def __repr__(self) -> str:
        self._ensure_loaded()
        return f"<FlipConfig path={self.path} sections={sorted(self._sections)}>"


# ── Global singleton ─────────────────────────────────────────────
cfg = FlipConfig()
