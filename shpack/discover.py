"""Script discovery.

All paths are resolved against an explicit ``base_dir``; nothing here reads or
changes the process working directory.
"""

from dataclasses import dataclass
import fnmatch
import logging
import os
import pathlib

from shpack.config import BundleConfig
from shpack.errors import BundleIOError, EntryNotFound, NoScriptsFound
from shpack.identifiers import sanitize

SCRIPT_PATTERN: str = "*.sh"


@dataclass(frozen=True, slots=True)
class ScriptRecord:
    """A script ready to be embedded.

    :ivar relpath: Path relative to the scripts root (POSIX separators).
    :ivar identifier: Sanitized form of ``relpath``.
    :ivar content: Raw script bytes.
    """

    relpath: str
    identifier: str
    content: bytes


def discover_scripts(
    config: BundleConfig,
    *,
    base_dir: pathlib.Path,
    pattern: str = SCRIPT_PATTERN,
) -> tuple[pathlib.PurePosixPath, ...]:
    """Collect the scripts to bundle.

    Files under the scripts root whose base name matches ``pattern`` are
    included, and the entry script is always added even when it does not match.

    :param config: Bundle config.
    :param base_dir: Directory that ``config.scripts`` and ``config.entry`` are relative to.
    :param pattern: Shell-style glob matched against base names.
    :returns: Sorted, de-duplicated paths relative to ``base_dir``.
    :raises NoScriptsFound: If nothing was found.
    """

    found: set[pathlib.PurePosixPath] = set()
    root_rel: pathlib.PurePosixPath = _normalize(config.scripts)
    scripts_root: pathlib.Path = base_dir / root_rel

    if scripts_root.is_dir() is True:
        for root_str, dirs, files in os.walk(scripts_root):
            dirs.sort()
            root_path: pathlib.Path = pathlib.Path(root_str)
            for name in files:
                if fnmatch.fnmatchcase(name, pattern) is False:
                    continue
                if (root_path / name).is_file() is False:
                    continue
                under_root: pathlib.Path = (root_path / name).relative_to(scripts_root)
                found.add(root_rel / under_root.as_posix())

    if len(config.entry) > 0:
        found.add(_normalize(config.entry))

    if len(found) == 0:
        raise NoScriptsFound(f"No scripts matching {pattern!r} found under {scripts_root}")

    return tuple(sorted(found))


def load_script_records(
    config: BundleConfig,
    scripts: tuple[pathlib.PurePosixPath, ...],
    *,
    base_dir: pathlib.Path,
    logger: logging.Logger | None = None,
) -> list[ScriptRecord]:
    """Read every discovered script and compute its scripts-root-relative path.

    :param config: Bundle config.
    :param scripts: Paths returned by :func:`discover_scripts`.
    :param base_dir: Directory the paths are relative to.
    :param logger: Optional logger for debug output.
    :returns: Records sorted by relative path.
    :raises EntryNotFound: If the entry script is missing or outside the scripts root.
    :raises BundleIOError: If a script cannot be read or lies outside the scripts root.
    """

    if logger is None:
        logger = logging.getLogger("shpack")

    resolve_entry(config)
    entry: pathlib.PurePosixPath = _normalize(config.entry)
    if entry not in scripts or (base_dir / entry).is_file() is False:
        raise EntryNotFound(f"Entry script not found: {base_dir / entry}")

    records: list[ScriptRecord] = []
    for script in scripts:
        rel: str | None = relative_to_root(script, config)
        if rel is None:
            raise BundleIOError(f"Script {script} is not inside the scripts root {config.scripts!r}")
        src: pathlib.Path = base_dir / script
        try:
            content: bytes = src.read_bytes()
        except OSError as exc:
            raise BundleIOError(f"Failed to read script {src}: {exc}") from exc
        records.append(ScriptRecord(relpath=rel, identifier=sanitize(rel), content=content))
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"shpack: embedding {rel} ({len(content)} bytes)")

    records.sort(key=lambda r: r.relpath)
    return records


def resolve_entry(config: BundleConfig) -> str:
    """Return the entry script's path relative to the scripts root.

    :param config: Bundle config.
    :returns: POSIX relative path, as used inside the bundle.
    :raises EntryNotFound: If the entry is not inside the scripts root.
    """

    rel: str | None = relative_to_root(_normalize(config.entry), config)
    if rel is None:
        raise EntryNotFound(
            f"Entry script {config.entry!r} is not inside the scripts root {config.scripts!r}"
        )
    return rel


def relative_to_root(path: pathlib.PurePosixPath, config: BundleConfig) -> str | None:
    """Express a discovered path relative to the scripts root.

    :param path: Path relative to the project directory.
    :param config: Bundle config.
    :returns: POSIX relative path, or ``None`` if ``path`` is not under the root.
    """

    root: pathlib.PurePosixPath = _normalize(config.scripts)
    if root == pathlib.PurePosixPath("."):
        rel = path
    elif path.is_relative_to(root) is True:
        rel = path.relative_to(root)
    else:
        return None

    if len(rel.parts) == 0 or ".." in rel.parts or rel.is_absolute() is True:
        return None
    return rel.as_posix()


def _normalize(path: str) -> pathlib.PurePosixPath:
    """Normalize a config path into a clean POSIX path.

    :param path: Path string as written in the config.
    :returns: Normalized path (``./`` prefixes and redundant separators removed).
    """

    return pathlib.PurePosixPath(os.path.normpath(path.replace("\\", "/")).replace(os.sep, "/"))
