"""
Runtime configuration.

All settings come from environment variables and are validated once at
startup. CLI flags in ffbuilder.main override individual values.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple


class SettingsError(ValueError):
    """Raised when an environment variable holds an invalid value."""

    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for {name}={value!r}: {reason}")


def _to_int(env: Mapping[str, str], name: str, *, default: int, minimum: int, maximum: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw)
    except ValueError:
        raise SettingsError(name, raw, "expected an integer") from None
    if parsed < minimum or (maximum is not None and parsed > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise SettingsError(name, raw, f"must be {bounds}")
    return parsed


def _to_float(env: Mapping[str, str], name: str, *, default: float, minimum: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = float(raw)
    except ValueError:
        raise SettingsError(name, raw, "expected a number") from None
    if parsed < minimum:
        raise SettingsError(name, raw, f"must be >= {minimum}")
    return parsed


def _to_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if raw is None or not raw.strip():
        return ("*",)
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    output_path: Path = Path("./output")
    log_dir: Optional[Path] = Path("./logs")
    log_level: str = "INFO"
    ffmpeg_binary: str = "ffmpeg"
    stop_grace_seconds: float = 5.0
    diagnostics_limit: int = 65536
    cors_origins: Tuple[str, ...] = field(default=("*",))

    def with_overrides(self, **overrides) -> "Settings":
        """Copy with non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from the environment.

    Args:
        env: Mapping to read from; defaults to os.environ

    Raises:
        SettingsError: If a numeric variable is malformed or out of range
    """
    env = os.environ if env is None else env

    log_dir_raw = env.get("LOG_FILE_PATH", "./logs")

    return Settings(
        host=env.get("HOST", "0.0.0.0"),
        port=_to_int(env, "PORT", default=3000, minimum=1, maximum=65535),
        output_path=Path(env.get("OUTPUT_PATH") or "./output"),
        log_dir=Path(log_dir_raw) if log_dir_raw.strip() else None,
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        ffmpeg_binary=env.get("FFMPEG_BINARY") or "ffmpeg",
        stop_grace_seconds=_to_float(env, "STOP_GRACE_SECONDS", default=5.0, minimum=0.0),
        diagnostics_limit=_to_int(env, "DIAGNOSTICS_LIMIT", default=65536, minimum=1024),
        cors_origins=_to_origins(env.get("CORS_ORIGINS")),
    )
