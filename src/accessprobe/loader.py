# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Build run inputs (target, credential, checks, settings) from the environment
and an optional JSON or YAML config file.

Environment variables win over file values so a CI job can reuse one checked-in
file across environments. Credential values are only ever read from the
environment or the file, never from the command line.
"""

from __future__ import annotations

import json
import logging
import math
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .config import ProbeSettings, load_probe_settings
from .errors import ProbeConfigError
from .http.headers import is_valid_header_name
from .models.check import CheckSpec
from .models.credential import Credential, Target

logger = logging.getLogger(__name__)

ENV_CONFIG = "ACCESSPROBE_CONFIG"
ENV_TARGET = "ACCESSPROBE_TARGET"
ENV_CHECKS = "ACCESSPROBE_CHECKS"
ENV_CLIENT_ID = "ACCESSPROBE_CLIENT_ID"
ENV_CLIENT_SECRET = "ACCESSPROBE_CLIENT_SECRET"

DEFAULT_CHECKS: tuple[dict[str, Any], ...] = (
    {"name": "health", "method": "GET", "path": "/health", "expected_status": [200]},
)


@dataclass(frozen=True)
class ProbeConfig:
    """Everything one run needs."""

    target: Target
    credential: Credential
    checks: tuple[CheckSpec, ...]
    settings: ProbeSettings


def read_config_file(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Parse a config file; ``.yaml``/``.yml`` through PyYAML, anything else as JSON.

    Parser messages are not echoed since they quote file content, which may
    hold a credential.
    """
    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProbeConfigError(f"cannot read config file {file_path}: {exc.strerror or type(exc).__name__}") from None

    if file_path.suffix.lower() in {".yaml", ".yml"}:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            where = f" (line {mark.line + 1})" if mark is not None else ""
            raise ProbeConfigError(f"cannot parse YAML config file {file_path}{where}") from None
    else:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProbeConfigError(f"cannot parse JSON config file {file_path} (line {exc.lineno})") from None

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ProbeConfigError(f"config file {file_path} must contain a mapping at the top level")
    return data


_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off", ""})

# field -> (type, bound check, bound description)
_NUMERIC_SETTINGS: dict[str, tuple[type, Callable[[Any], bool], str]] = {
    "timeout": (float, lambda v: v > 0, "positive"),
    "retries": (int, lambda v: v >= 0, ">= 0"),
    "backoff_factor": (float, lambda v: v >= 1, ">= 1"),
    "initial_delay": (float, lambda v: v >= 0, ">= 0"),
    "max_delay": (float, lambda v: v >= 0, ">= 0"),
    "jitter": (float, lambda v: 0 <= v <= 1, "between 0 and 1"),
    "max_body_bytes": (int, lambda v: v > 0, "positive"),
    "max_snippet_bytes": (int, lambda v: v > 0, "positive"),
    "concurrency": (int, lambda v: v >= 1, ">= 1"),
}
_BOOL_SETTINGS = frozenset({"allow_redirects", "verify_ssl"})
_HEADER_SETTINGS = frozenset({"id_header", "secret_header"})


def _coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ProbeConfigError(f"settings.{name} must be a boolean (true/false)")


def _coerce_number(name: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool) or value is None:
        raise ProbeConfigError(f"settings.{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ProbeConfigError(f"settings.{name} must be a number") from None
    if not math.isfinite(number):
        raise ProbeConfigError(f"settings.{name} must be finite")
    if kind is int:
        if not number.is_integer():
            raise ProbeConfigError(f"settings.{name} must be an integer")
        return int(number)
    return number


def _coerce_setting(name: str, value: Any) -> Any:
    if name in _NUMERIC_SETTINGS:
        kind, in_range, bound = _NUMERIC_SETTINGS[name]
        number = _coerce_number(name, value, kind)
        if not in_range(number):
            raise ProbeConfigError(f"settings.{name} must be {bound}")
        return number
    if name in _BOOL_SETTINGS:
        return _coerce_bool(name, value)
    if name == "deadline":
        if value is None:
            return None
        number = _coerce_number(name, value, float)
        return number if number > 0 else None
    if name in _HEADER_SETTINGS:
        if not is_valid_header_name(value):
            raise ProbeConfigError(f"settings.{name} must be a valid HTTP header name")
        return value
    if name == "user_agent":
        if not isinstance(value, str) or not value.strip() or not value.isascii() or not value.isprintable():
            raise ProbeConfigError("settings.user_agent must be a non-empty printable ASCII string")
        return value.strip()
    raise ProbeConfigError(f"unknown settings: {name}")


def apply_settings_overrides(settings: ProbeSettings, overrides: Mapping[str, Any] | None) -> ProbeSettings:
    """Return ``settings`` with values from a config file ``settings:`` section.

    Every value is coerced to the field's type; YAML and JSON hand back
    strings such as ``"false"`` or ``"30"`` that must not be used as-is.
    """
    if not overrides:
        return settings
    if not isinstance(overrides, Mapping):
        raise ProbeConfigError("'settings' must be a mapping")
    known = {f.name for f in fields(ProbeSettings)}
    unknown = sorted(str(key) for key in overrides if key not in known)
    if unknown:
        raise ProbeConfigError(f"unknown settings: {', '.join(unknown)}")
    coerced = {str(name): _coerce_setting(str(name), value) for name, value in overrides.items()}
    updated = replace(settings, **coerced)
    if updated.id_header.lower() == updated.secret_header.lower():
        raise ProbeConfigError("settings.id_header and settings.secret_header must differ")
    return updated


def load_credential(section: Mapping[str, Any] | None, env: Mapping[str, str]) -> Credential:
    """
    Resolve the credential pair.

    ``section`` may name the environment variables to read (``id_env``,
    ``secret_env``) or carry literal ``id``/``secret`` values; environment
    values take precedence.
    """
    section = section or {}
    if not isinstance(section, Mapping):
        raise ProbeConfigError("'credential' must be a mapping")
    id_env = str(section.get("id_env") or ENV_CLIENT_ID)
    secret_env = str(section.get("secret_env") or ENV_CLIENT_SECRET)

    identifier = env.get(id_env) or section.get("id")
    secret = env.get(secret_env) or section.get("secret")
    if not identifier:
        raise ProbeConfigError(f"credential identifier is missing (set {id_env})")
    if not secret:
        raise ProbeConfigError(f"credential secret is missing (set {secret_env})")
    return Credential(identifier=str(identifier), secret=str(secret))


def load_checks(raw: Any, settings: ProbeSettings) -> tuple[CheckSpec, ...]:
    if raw is None:
        raw = DEFAULT_CHECKS
    if isinstance(raw, Mapping) or not isinstance(raw, (list, tuple)):
        raise ProbeConfigError("'checks' must be a list")
    if not raw:
        raise ProbeConfigError("no checks configured")
    return tuple(CheckSpec.from_mapping(entry, settings) for entry in raw)


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    settings: ProbeSettings | None = None,
) -> ProbeConfig:
    """Assemble a ProbeConfig; raises ProbeConfigError on any missing or malformed input."""
    env = os.environ if env is None else env
    settings = settings or load_probe_settings()

    config_path = path or env.get(ENV_CONFIG)
    data: dict[str, Any] = read_config_file(config_path) if config_path else {}
    if config_path:
        logger.debug("loaded config file %s", config_path)

    settings = apply_settings_overrides(settings, data.get("settings"))

    raw_target = env.get(ENV_TARGET) or data.get("target")
    if not raw_target:
        raise ProbeConfigError(f"target is missing (set {ENV_TARGET} or 'target' in the config file)")
    target = Target.parse(str(raw_target))

    credential = load_credential(data.get("credential"), env)

    raw_checks: Any = data.get("checks")
    inline = env.get(ENV_CHECKS)
    if inline:
        try:
            raw_checks = json.loads(inline)
        except json.JSONDecodeError:
            raise ProbeConfigError(f"{ENV_CHECKS} is not valid JSON") from None
    checks = load_checks(raw_checks, settings)

    return ProbeConfig(target=target, credential=credential, checks=checks, settings=settings)


__all__ = [
    "DEFAULT_CHECKS",
    "ENV_CHECKS",
    "ENV_CLIENT_ID",
    "ENV_CLIENT_SECRET",
    "ENV_CONFIG",
    "ENV_TARGET",
    "ProbeConfig",
    "apply_settings_overrides",
    "load_checks",
    "load_config",
    "load_credential",
    "read_config_file",
]
