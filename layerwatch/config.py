from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.9/3.10
    import tomli as tomllib  # type: ignore[import-not-found]

from .sinks import APPLICATION_STREAM, DEFAULT_FILENAMES, NETWORK_STREAM, TRANSPORT_STREAM
from .sources import MAX_FRAME_SIZE
from .utils import safe_float, safe_int


@dataclass(frozen=True)
class ConfigLoadResult:
    path: Path | None
    data: dict[str, Any]
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MonitorSettings:
    read_timeout: float = 0.5
    render_interval: float = 1.0
    max_frame_size: int = MAX_FRAME_SIZE
    output_dir: Path = Path(".")
    network_file: str = DEFAULT_FILENAMES[NETWORK_STREAM]
    transport_file: str = DEFAULT_FILENAMES[TRANSPORT_STREAM]
    application_file: str = DEFAULT_FILENAMES[APPLICATION_STREAM]
    keep_existing: bool = False
    helper: Optional[str] = None

    def filenames(self) -> dict[str, str]:
        return {
            NETWORK_STREAM: self.network_file,
            TRANSPORT_STREAM: self.transport_file,
            APPLICATION_STREAM: self.application_file,
        }

    def override(self, **changes: Any) -> "MonitorSettings":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


DEFAULT_CONFIG_PATHS = [
    Path("layerwatch.toml"),
    Path.home() / ".layerwatch.toml",
    Path.home() / ".config" / "layerwatch" / "config.toml",
]


def find_config(explicit: str | Path | None) -> Path | None:
    if explicit:
        return Path(explicit).expanduser()
    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None) -> ConfigLoadResult:
    if not path or not path.exists():
        return ConfigLoadResult(path=None, data={})
    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8", errors="ignore"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        return ConfigLoadResult(path=path, data={}, errors=[f"Config {path}: {exc}"])
    if not isinstance(data, dict):
        return ConfigLoadResult(path=path, data={})
    return ConfigLoadResult(path=path, data=data)


def _positive_float(table: dict[str, Any], key: str, default: float, errors: list[str]) -> float:
    if key not in table:
        return default
    value = safe_float(table[key])
    if value is None or value <= 0:
        errors.append(f"Invalid {key!r}: {table[key]!r}; using {default}.")
        return default
    return value


def settings_from_config(data: dict[str, Any], errors: list[str] | None = None) -> MonitorSettings:
    errors = errors if errors is not None else []
    defaults = MonitorSettings()
    capture = data.get("capture") if isinstance(data.get("capture"), dict) else {}
    output = data.get("output") if isinstance(data.get("output"), dict) else {}

    max_frame_size = defaults.max_frame_size
    if "max_frame_size" in capture:
        parsed = safe_int(capture["max_frame_size"])
        if parsed is None or parsed <= 0:
            errors.append(f"Invalid 'max_frame_size': {capture['max_frame_size']!r}; using {max_frame_size}.")
        else:
            max_frame_size = parsed

    helper = capture.get("helper")
    names = {}
    for key in ("network_file", "transport_file", "application_file"):
        value = output.get(key)
        if isinstance(value, str) and value.strip():
            names[key] = value.strip()

    return MonitorSettings(
        read_timeout=_positive_float(capture, "read_timeout", defaults.read_timeout, errors),
        render_interval=_positive_float(capture, "render_interval", defaults.render_interval, errors),
        max_frame_size=max_frame_size,
        output_dir=Path(str(output.get("directory") or defaults.output_dir)).expanduser(),
        keep_existing=bool(output.get("keep_existing", defaults.keep_existing)),
        helper=str(helper) if isinstance(helper, str) and helper.strip() else None,
        **names,
    )
