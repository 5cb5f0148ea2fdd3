"""Stickies configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (STICKIES_DB, STICKIES_TRANSCRIPTION_MODEL, ...)
  3. Per-project stickies.yaml  (current working directory)
  4. Global ~/.stickies/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".stickies"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "stickies.yaml"

# Fields that suggest a credential; forbidden in global config.
# Does NOT match legitimate keys like max_tokens or max_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "audio", "transcription", "extraction", "client", "server", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Ingestion / task / sticky store (stickies.yaml: database:)."""

    path: str = "stickies.db"


@dataclass
class AudioCfg:
    """Transcoder targets and upload ceilings (stickies.yaml: audio:).

    Attributes:
        ffmpeg_path: ffmpeg executable (name on PATH or absolute path).
        ffprobe_path: ffprobe executable.
        target_format: Container/codec the transcription service receives (mp3 | wav).
        sample_rate: Target sample rate in Hz.
        channels: Target channel count.
        normalize_volume: Apply the peak volume step.
        volume_db: Gain applied by the volume step.
        max_file_bytes: Uploads above this size are rejected before transcoding.
        max_duration_seconds: Uploads longer than this are rejected before transcoding.
        work_dir: Parent directory for per-ingestion work arenas (system temp if unset).
    """

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    target_format: str = "mp3"
    sample_rate: int = 16_000
    channels: int = 1
    normalize_volume: bool = True
    volume_db: float = -1.0
    max_file_bytes: int = 25 * 1024 * 1024
    max_duration_seconds: float = 30.0
    work_dir: str | None = None


@dataclass
class TranscriptionCfg:
    """Speech-to-text client (stickies.yaml: transcription:)."""

    model: str = "openai/whisper-1"
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds; doubled per attempt
    timeout: float = 60.0


@dataclass
class ExtractionCfg:
    """Completion models for tasks and learning stickies (stickies.yaml: extraction:)."""

    task_model: str = "openai/gpt-4o-mini"
    task_temperature: float = 0.3
    learning_model: str = "openai/gpt-4o-mini"
    learning_temperature: float = 0.5
    timeout: float = 30.0
    num_retries: int = 0


@dataclass
class ClientCfg:
    """Capture/upload client (stickies.yaml: client:)."""

    api_url: str = "http://localhost:8000"
    language: str = "en"
    poll_interval: float = 1.0
    max_poll_attempts: int = 60
    request_timeout: float = 120.0
    recorder_command: str = "pw-record"


@dataclass
class ServerCfg:
    """HTTP server bind address (stickies.yaml: server:)."""

    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LoggingCfg:
    """Log level and optional log file (stickies.yaml: logging:)."""

    level: str = "INFO"
    file: str | None = None


@dataclass
class StickiesConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    audio: AudioCfg = field(default_factory=AudioCfg)
    transcription: TranscriptionCfg = field(default_factory=TranscriptionCfg)
    extraction: ExtractionCfg = field(default_factory=ExtractionCfg)
    client: ClientCfg = field(default_factory=ClientCfg)
    server: ServerCfg = field(default_factory=ServerCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: StickiesConfig) -> None:
    if cfg.audio.target_format not in ("mp3", "wav"):
        raise ConfigError(
            f"audio.target_format must be 'mp3' or 'wav', got '{cfg.audio.target_format}'"
        )
    if cfg.transcription.max_retries < 1:
        raise ConfigError("transcription.max_retries must be at least 1")
    if cfg.client.max_poll_attempts < 1:
        raise ConfigError("client.max_poll_attempts must be at least 1")
    if cfg.logging.level not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, "
            f"got '{cfg.logging.level}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> StickiesConfig:
    """Build a *StickiesConfig* from a merged raw YAML dict."""
    cfg = StickiesConfig()

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "audio" in data:
        a = data["audio"] or {}
        dflt = cfg.audio
        cfg.audio = AudioCfg(
            ffmpeg_path=str(a.get("ffmpeg_path", dflt.ffmpeg_path)),
            ffprobe_path=str(a.get("ffprobe_path", dflt.ffprobe_path)),
            target_format=str(a.get("target_format", dflt.target_format)).lower(),
            sample_rate=int(a.get("sample_rate", dflt.sample_rate)),
            channels=int(a.get("channels", dflt.channels)),
            normalize_volume=bool(a.get("normalize_volume", dflt.normalize_volume)),
            volume_db=float(a.get("volume_db", dflt.volume_db)),
            max_file_bytes=int(a.get("max_file_bytes", dflt.max_file_bytes)),
            max_duration_seconds=float(
                a.get("max_duration_seconds", dflt.max_duration_seconds)
            ),
            work_dir=a.get("work_dir") or dflt.work_dir,
        )

    if "transcription" in data:
        t = data["transcription"] or {}
        dflt = cfg.transcription
        cfg.transcription = TranscriptionCfg(
            model=str(t.get("model", dflt.model)),
            max_retries=int(t.get("max_retries", dflt.max_retries)),
            retry_delay=float(t.get("retry_delay", dflt.retry_delay)),
            timeout=float(t.get("timeout", dflt.timeout)),
        )

    if "extraction" in data:
        e = data["extraction"] or {}
        dflt = cfg.extraction
        cfg.extraction = ExtractionCfg(
            task_model=str(e.get("task_model", dflt.task_model)),
            task_temperature=float(e.get("task_temperature", dflt.task_temperature)),
            learning_model=str(e.get("learning_model", dflt.learning_model)),
            learning_temperature=float(
                e.get("learning_temperature", dflt.learning_temperature)
            ),
            timeout=float(e.get("timeout", dflt.timeout)),
            num_retries=int(e.get("num_retries", dflt.num_retries)),
        )

    if "client" in data:
        c = data["client"] or {}
        dflt = cfg.client
        cfg.client = ClientCfg(
            api_url=str(c.get("api_url", dflt.api_url)),
            language=str(c.get("language", dflt.language)),
            poll_interval=float(c.get("poll_interval", dflt.poll_interval)),
            max_poll_attempts=int(c.get("max_poll_attempts", dflt.max_poll_attempts)),
            request_timeout=float(c.get("request_timeout", dflt.request_timeout)),
            recorder_command=str(c.get("recorder_command", dflt.recorder_command)),
        )

    if "server" in data:
        s = data["server"] or {}
        cfg.server = ServerCfg(
            host=str(s.get("host", cfg.server.host)),
            port=int(s.get("port", cfg.server.port)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            file=lg.get("file") or cfg.logging.file,
        )

    return cfg


def _apply_env_overrides(cfg: StickiesConfig) -> StickiesConfig:
    """Apply STICKIES_* environment variable overrides (layer 2)."""
    if path := os.environ.get("STICKIES_DB"):
        cfg.database.path = path
    if model := os.environ.get("STICKIES_TRANSCRIPTION_MODEL"):
        cfg.transcription.model = model
    if model := os.environ.get("STICKIES_TASK_MODEL"):
        cfg.extraction.task_model = model
    if model := os.environ.get("STICKIES_LEARNING_MODEL"):
        cfg.extraction.learning_model = model
    if retries := os.environ.get("STICKIES_MAX_RETRIES"):
        cfg.transcription.max_retries = int(retries)
    if delay := os.environ.get("STICKIES_RETRY_DELAY"):
        cfg.transcription.retry_delay = float(delay)
    if url := os.environ.get("STICKIES_API_URL"):
        cfg.client.api_url = url
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> StickiesConfig:
    """Load and return a merged *StickiesConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *stickies.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
