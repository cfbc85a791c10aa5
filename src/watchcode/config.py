"""
Configuration management for watchcode.

Handles:
- Config dataclass with all options (immutable once built)
- TOML/INI configuration file loading (system -> user)
- Environment variable overrides
- Automatic script mode detection
"""

import configparser
import dataclasses
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, TextIO

# Try TOML support (Python 3.11+ or tomli package)
try:
    import tomllib  # Python 3.11+

    TOML_AVAILABLE = True
except ImportError:
    try:
        import tomli as tomllib  # pip install tomli

        TOML_AVAILABLE = True
    except ImportError:
        TOML_AVAILABLE = False


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


# -------------------- SCRIPT MODE DETECTION --------------------


def is_script_mode(stream: Optional[TextIO] = None) -> bool:
    """
    Detect if output is not meant for a human at a terminal.

    Returns True if ``stream`` (stdout by default) is not a TTY, or
    NO_COLOR / WATCHCODE_SCRIPT_MODE is set in the environment.
    """
    if os.getenv("NO_COLOR") or os.getenv("WATCHCODE_SCRIPT_MODE"):
        return True
    if stream is None:
        stream = sys.stdout
    try:
        return not stream.isatty()
    except (AttributeError, ValueError):
        return True


# -------------------- XDG DIRECTORIES --------------------


def get_xdg_config_home() -> Path:
    """Get XDG config home directory."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def get_config_dirs() -> Dict[str, Path]:
    """Return the system and user configuration directories (not created)."""
    return {
        "system": Path("/etc/watchcode"),
        "user": get_xdg_config_home() / "watchcode",
    }


# -------------------- CONFIGURATION DATACLASS --------------------


@dataclass(frozen=True)
class Config:
    """All configuration options for watchcode."""

    # Directory trees
    watch_dir: Path = Path("/watch")
    temp_dir: Path = Path("/temp")
    complete_dir: Path = Path("/ready")

    # Encoding
    accel: str = "va"  # cpu, va, qsv, nvenc, vulkan
    device: str = "/dev/dri/renderD128"  # "vulkan=vk:0" for vulkan
    codec: str = "av1"
    bitrate: str = "4M"  # bitrate, or quality index for qsv (e.g. 25)

    # File handling
    delete_source: bool = True
    delete_misc: bool = True
    codec_skip: bool = False
    sample_duration: float = 0.0  # seconds, 0 disables sample detection

    # Housekeeping
    clean_depth: int = 1  # negative disables empty directory cleanup

    # Queue and watcher timing
    queue_interval: float = 5.0
    stable_wait: float = 2.0
    max_retries: int = 0  # 0 = retry failed encodes forever

    # Output
    show_progress: bool = True
    log_level: str = "INFO"

    def replace(self, **changes: Any) -> "Config":
        """Return a copy with ``changes`` applied (values are coerced)."""
        return build_config(dataclasses.asdict(self), changes)

    @property
    def cleanup_enabled(self) -> bool:
        return self.clean_depth >= 0


# -------------------- VALUE PARSING --------------------

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def parse_bool(value: Any) -> bool:
    """Parse a boolean from config/env input."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    v = str(value).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"Not a boolean: {value!r}")


def _parse_ini_value(value: str):
    """Parse INI value: bool, int, float or string."""
    v = value.strip()
    if not v:
        return ""
    if v.lower() in ("true", "yes", "on"):
        return True
    if v.lower() in ("false", "no", "off"):
        return False
    try:
        return int(v)
    except ValueError:
        pass
    try:
        return float(v)
    except ValueError:
        pass
    return v


def _coerce(name: str, value: Any) -> Any:
    """Coerce a raw value to the type of the Config field ``name``."""
    default = getattr(Config, name)
    try:
        if isinstance(default, bool):
            return parse_bool(value)
        if isinstance(default, Path):
            return Path(value).expanduser()
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r} ({e})") from e
    return str(value)


FIELD_NAMES = tuple(f.name for f in dataclasses.fields(Config))


def build_config(*layers: Mapping[str, Any]) -> Config:
    """
    Build a Config from layers of overrides, later layers winning.

    Unknown keys are ignored; ``None`` values leave the lower layer in place.
    """
    values: Dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            if key in FIELD_NAMES and value is not None:
                values[key] = _coerce(key, value)
    return Config(**values)


# -------------------- CONFIG FILE LOADING --------------------


def _load_ini_config(path: Path) -> Dict[str, Any]:
    """Load INI file and convert to nested dict."""
    cp = configparser.ConfigParser()
    cp.read(path)
    result: Dict[str, Any] = {}
    for section in cp.sections():
        result[section] = {}
        for key, value in cp.items(section):
            result[section][key] = _parse_ini_value(value)
    return result


def load_file(path: Path) -> Dict[str, Any]:
    """Load a single TOML or INI file into a nested dict."""
    if path.suffix == ".toml":
        if not TOML_AVAILABLE:
            raise ConfigError(f"TOML support not available to read {path}")
        with path.open("rb") as f:
            return dict(tomllib.load(f))
    return _load_ini_config(path)


def _load_single_config(config_dir: Path) -> Dict[str, Any]:
    """Load config from a single directory (TOML or INI file)."""
    toml_path = config_dir / "config.toml"
    ini_path = config_dir / "config.ini"

    for path in (toml_path, ini_path):
        if path.exists() and (path.suffix != ".toml" or TOML_AVAILABLE):
            try:
                return load_file(path)
            except (OSError, ValueError, configparser.Error) as e:
                print(f"Warning: Failed to load {path}: {e}", file=sys.stderr)
                return {}
    return {}


def _deep_merge_dicts(base: dict, override: dict) -> dict:
    """Deep merge two dicts, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def load_config_file(explicit: Optional[Path] = None) -> dict:
    """
    Load the configuration file(s).

    With ``explicit`` only that file is read. Otherwise:
    1. System config: /etc/watchcode/config.toml (lowest priority, optional)
    2. User config: ~/.config/watchcode/config.toml (highest priority)
    """
    if explicit is not None:
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        try:
            return load_file(explicit)
        except (OSError, ValueError, configparser.Error) as e:
            raise ConfigError(f"Failed to load {explicit}: {e}") from e

    dirs = get_config_dirs()
    system_config = _load_single_config(dirs["system"]) if dirs["system"].exists() else {}
    user_config = _load_single_config(dirs["user"])
    return _deep_merge_dicts(system_config, user_config)


# Map config file keys to Config attribute names
FILE_MAPPINGS = {
    ("paths", "watch"): "watch_dir",
    ("paths", "temp"): "temp_dir",
    ("paths", "complete"): "complete_dir",
    ("encoding", "accel"): "accel",
    ("encoding", "device"): "device",
    ("encoding", "codec"): "codec",
    ("encoding", "bitrate"): "bitrate",
    ("encoding", "codec_skip"): "codec_skip",
    ("files", "delete_source"): "delete_source",
    ("files", "delete_misc"): "delete_misc",
    ("files", "sample_duration"): "sample_duration",
    ("cleanup", "depth"): "clean_depth",
    ("queue", "interval"): "queue_interval",
    ("queue", "max_retries"): "max_retries",
    ("watch", "stable_wait"): "stable_wait",
    ("output", "progress"): "show_progress",
    ("output", "log_level"): "log_level",
}


def flatten_file_config(file_config: dict) -> Dict[str, Any]:
    """Translate a nested config-file dict into Config field overrides."""
    flat: Dict[str, Any] = {}
    for (section, key), attr_name in FILE_MAPPINGS.items():
        section_values = file_config.get(section)
        if isinstance(section_values, dict) and key in section_values:
            flat[attr_name] = section_values[key]
    return flat


# -------------------- ENVIRONMENT --------------------

ENV_MAPPINGS = {
    "WATCH_DIR": "watch_dir",
    "TEMP_DIR": "temp_dir",
    "COMPLETE_DIR": "complete_dir",
    "WORK_DEVICE": "device",
    "VIDEO_BIT_RATE": "bitrate",
    "VIDEO_CODEC": "codec",
    "DELETE_SOURCE_FILE": "delete_source",
    "DELETE_MISC_FILES": "delete_misc",
    "VIDEO_ACCEL_API": "accel",
    "VIDEO_SHOW_PROGRESS": "show_progress",
    "FOLDER_CLEAN_DEPTH": "clean_depth",
    "VIDEO_CODEC_SKIP": "codec_skip",
    "SAMPLE_DURATION": "sample_duration",
    "QUEUE_INTERVAL": "queue_interval",
    "STABLE_WAIT": "stable_wait",
    "MAX_RETRIES": "max_retries",
    "LOG_LEVEL": "log_level",
}


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect Config field overrides from environment variables."""
    if environ is None:
        environ = os.environ
    return {attr: environ[name] for name, attr in ENV_MAPPINGS.items() if name in environ}


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Build the process-wide configuration.

    Priority (lowest to highest): defaults, config file, environment, CLI.
    """
    file_values = flatten_file_config(load_config_file(config_path))
    return build_config(file_values, env_overrides(environ), cli_overrides or {})


def _get_default_config_toml() -> str:
    """Return an example config as TOML string."""
    return """# watchcode configuration file

[paths]
watch = "/watch"
temp = "/temp"
complete = "/ready"

[encoding]
accel = "va"  # cpu, va, qsv, nvenc, vulkan
device = "/dev/dri/renderD128"
codec = "av1"
bitrate = "4M"
codec_skip = false

[files]
delete_source = true
delete_misc = true
sample_duration = 0

[cleanup]
depth = 1  # negative disables

[queue]
interval = 5.0
max_retries = 0  # 0 = unbounded

[watch]
stable_wait = 2.0

[output]
progress = true
log_level = "INFO"
"""


def save_default_config(config_dir: Path) -> Path:
    """Create an example config file if none exists. Returns path."""
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.toml"
    if not path.exists():
        path.write_text(_get_default_config_toml())
    return path
