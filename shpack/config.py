"""Project configuration.

``shpack.yaml`` is a flat YAML mapping of strings. Every key is optional;
missing or empty values fall back to the defaults below, and a missing file
means "all defaults".
"""

from dataclasses import dataclass
import datetime
import pathlib

import yaml

from shpack.errors import ConfigError

CONFIG_FILENAME: str = "shpack.yaml"

DEFAULT_NAME: str = "mytool"
DEFAULT_ENTRY: str = "scripts/main.sh"
DEFAULT_SCRIPTS: str = "scripts"
DEFAULT_VERSION: str = "1.0.0"
DEFAULT_TOOLCHAIN: str = "zipapp"

_DEFAULTS: dict[str, str] = {
    "name": DEFAULT_NAME,
    "entry": DEFAULT_ENTRY,
    "scripts": DEFAULT_SCRIPTS,
    "version": DEFAULT_VERSION,
    "toolchain": DEFAULT_TOOLCHAIN,
}


@dataclass(frozen=True, slots=True)
class BundleConfig:
    """Resolved bundle configuration.

    :ivar name: Tool name (output file name and cache directory component).
    :ivar entry: Entry script path, relative to the project directory.
    :ivar scripts: Scripts root, relative to the project directory.
    :ivar version: Version label baked into the bundle and its cache key.
    :ivar toolchain: Name of the toolchain used to produce the executable.
    """

    name: str
    entry: str
    scripts: str
    version: str
    toolchain: str = DEFAULT_TOOLCHAIN


def default_config() -> BundleConfig:
    """Return a config with every field at its default."""

    return BundleConfig(**_DEFAULTS)


def load_config(path: pathlib.Path) -> BundleConfig:
    """Load ``shpack.yaml``, filling in defaults.

    :param path: Path to the config file. A missing file yields the defaults.
    :returns: Resolved config.
    :raises ConfigError: If the file cannot be read or is not a flat mapping.
    """

    if path.exists() is False:
        return default_config()

    try:
        text: str = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc

    try:
        # BaseLoader keeps every scalar as its literal text ("1.10" stays "1.10").
        raw = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if isinstance(raw, dict) is False:
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(raw).__name__}.")

    values: dict[str, str] = {}
    for key, default in _DEFAULTS.items():
        value = raw.get(key)
        if isinstance(value, (dict, list)):
            raise ConfigError(f"Config key {key!r} in {path} must be a string.")
        text_value: str = "" if value is None else value.strip()
        values[key] = text_value if len(text_value) > 0 else default

    return BundleConfig(**values)


def render_config(config: BundleConfig) -> str:
    """Render a config as ``shpack.yaml`` text.

    :param config: Config to render.
    :returns: YAML document.
    """

    data: dict[str, str] = {
        "name": config.name,
        "entry": config.entry,
        "scripts": config.scripts,
        "version": config.version,
    }
    if config.toolchain != DEFAULT_TOOLCHAIN:
        data["toolchain"] = config.toolchain
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def write_default_config(path: pathlib.Path, config: BundleConfig | None = None) -> None:
    """Write a sample ``shpack.yaml``.

    :param path: Destination file.
    :param config: Config to write (defaults when omitted).
    :raises ConfigError: If the file cannot be written.
    """

    if config is None:
        config = default_config()
    try:
        path.write_text(render_config(config), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to write config file {path}: {exc}") from exc


def random_version(now: datetime.datetime | None = None) -> str:
    """Build a throwaway version string for fresh builds.

    The format is ``YEAR.DAYOFYEAR.SECONDOFDAY`` so successive builds never
    share a cache directory.

    :param now: Timestamp to derive the version from (defaults to local now).
    :returns: Version string like ``2026.292.04511``.
    """

    if now is None:
        now = datetime.datetime.now()
    day: int = now.timetuple().tm_yday
    second_of_day: int = now.hour * 3600 + now.minute * 60 + now.second
    return f"{now.year}.{day:03d}.{second_of_day:05d}"
