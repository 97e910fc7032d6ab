"""Bundle builder.

This module implements the build pipeline:

- Discover the shell scripts under the configured scripts root.
- Copy them into an ephemeral workspace and generate a launcher program that
  embeds every script's bytes.
- Hand the workspace to an external toolchain (``zipapp`` or PyInstaller) and
  move the resulting executable to its final location.

Every path is resolved against an explicit project directory; the process
working directory is never changed.
"""

from dataclasses import dataclass, replace
import datetime
import logging
import os
import pathlib
import shutil
import tempfile
import time

from shpack.config import (
    CONFIG_FILENAME,
    DEFAULT_TOOLCHAIN,
    BundleConfig,
    load_config,
    random_version,
    write_default_config,
)
from shpack.discover import ScriptRecord, discover_scripts, load_script_records, resolve_entry
from shpack.errors import BundleIOError, ConfigError, EntryNotFound
from shpack.generator import write_bundle_source
from shpack.toolchain import BUNDLE_DIRNAME, Toolchain, resolve_toolchain

SAMPLE_MAIN_SCRIPT: str = "#!/bin/bash\n# Main entry point script\n"


@dataclass(frozen=True, slots=True)
class CopyStats:
    """Stats collected while staging scripts.

    :ivar files_copied: Number of files copied.
    :ivar bytes_copied: Total bytes copied.
    """

    files_copied: int
    bytes_copied: int


def build_bundle(
    *,
    config: BundleConfig,
    scripts: tuple[pathlib.PurePosixPath, ...],
    output_path: pathlib.Path,
    base_dir: pathlib.Path,
    toolchain: Toolchain | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Build an executable from a discovered script set.

    The ephemeral workspace is removed on every exit path. On failure nothing
    is written to ``output_path``.

    :param config: Bundle config.
    :param scripts: Paths returned by :func:`shpack.discover.discover_scripts`.
    :param output_path: Final executable path (made absolute). An existing directory
        receives the executable as ``<dir>/<name>``.
    :param base_dir: Directory the config paths are relative to.
    :param toolchain: Toolchain to compile with (defaults to ``config.toolchain``).
    :param logger: Optional logger for progress output.
    :returns: Absolute path of the produced executable.
    :raises ShpackError: If any pipeline step fails.
    """

    if logger is None:
        logger = logging.getLogger("shpack")
    if toolchain is None:
        toolchain = resolve_toolchain(config.toolchain)

    final_path: pathlib.Path = pathlib.Path(os.path.abspath(output_path))
    if final_path.is_dir() is True:
        final_path = final_path / config.name
    records: list[ScriptRecord] = load_script_records(config, scripts, base_dir=base_dir, logger=logger)
    entry_relpath: str = resolve_entry(config)

    t_total0: float = time.perf_counter()
    logger.info(f"shpack: building {config.name} {config.version} ({len(records)} scripts, toolchain={toolchain.name})")

    with tempfile.TemporaryDirectory(prefix="shpack_build_") as td:
        workspace: pathlib.Path = pathlib.Path(td)

        stats: CopyStats = _stage_scripts(records=records, dst=workspace / "scripts")
        logger.info(f"shpack: staged scripts ({stats.files_copied} files, {stats.bytes_copied} bytes)")
        staged: list[ScriptRecord] = _load_staged(records=records, src=workspace / "scripts")

        write_bundle_source(
            output_path=workspace / BUNDLE_DIRNAME / "__main__.py",
            config=config,
            records=staged,
            entry_relpath=entry_relpath,
            logger=logger,
        )

        toolchain.init_module(workspace=workspace, module_name=config.name, version=config.version, logger=logger)

        t_compile0: float = time.perf_counter()
        artifact: pathlib.Path = toolchain.compile(workspace=workspace, module_name=config.name, logger=logger)
        t_compile1: float = time.perf_counter()
        logger.info(f"shpack: compiled with {toolchain.name} in {t_compile1 - t_compile0:.2f}s")

        _install_artifact(artifact=artifact, final_path=final_path)

    t_total1: float = time.perf_counter()
    logger.info(f"shpack: built {final_path} in {t_total1 - t_total0:.2f}s")
    return final_path


def build_project(
    project_dir: pathlib.Path,
    *,
    output_path: pathlib.Path | None = None,
    toolchain_name: str | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Build a project described by ``<project_dir>/shpack.yaml``.

    :param project_dir: Project directory.
    :param output_path: Output path (defaults to ``<project_dir>/build/<name>``).
    :param toolchain_name: Toolchain override (defaults to the config's).
    :param logger: Optional logger for progress output.
    :returns: Absolute path of the produced executable.
    """

    if logger is None:
        logger = logging.getLogger("shpack")

    base_dir: pathlib.Path = pathlib.Path(os.path.abspath(project_dir))
    if base_dir.is_dir() is False:
        raise ConfigError(f"Project directory does not exist: {base_dir}")
    logger.info(f"shpack: building from {base_dir}")

    config: BundleConfig = load_config(base_dir / CONFIG_FILENAME)
    toolchain: Toolchain = resolve_toolchain(toolchain_name if toolchain_name is not None else config.toolchain)
    scripts: tuple[pathlib.PurePosixPath, ...] = discover_scripts(config, base_dir=base_dir)

    if output_path is None:
        output_path = base_dir / "build" / config.name

    return build_bundle(
        config=config,
        scripts=scripts,
        output_path=output_path,
        base_dir=base_dir,
        toolchain=toolchain,
        logger=logger,
    )


def make_from_folder(
    folder: pathlib.Path,
    *,
    output_path: pathlib.Path | None = None,
    toolchain_name: str | None = None,
    logger: logging.Logger | None = None,
    now: datetime.datetime | None = None,
) -> pathlib.Path:
    """Quick-build a plain folder of scripts that has a ``main.sh`` at its root.

    The tool is named after the folder and gets a fresh time-derived version,
    so every build extracts into its own cache directory.

    :param folder: Folder containing the scripts.
    :param output_path: Output path (defaults to ``./<folder name>``).
    :param toolchain_name: Toolchain override.
    :param logger: Optional logger for progress output.
    :param now: Timestamp used to derive the version.
    :returns: Absolute path of the produced executable.
    """

    if logger is None:
        logger = logging.getLogger("shpack")

    src: pathlib.Path = pathlib.Path(os.path.abspath(folder))
    if src.is_dir() is False:
        raise ConfigError(f"Folder does not exist: {src}")
    if (src / "main.sh").is_file() is False:
        raise EntryNotFound(f"No main.sh found in {src}")

    config: BundleConfig = BundleConfig(
        name=src.name,
        entry="main.sh",
        scripts=".",
        version=random_version(now),
        toolchain=toolchain_name if toolchain_name is not None else DEFAULT_TOOLCHAIN,
    )
    logger.info(f"shpack: making {config.name} from {src}")

    scripts: tuple[pathlib.PurePosixPath, ...] = discover_scripts(config, base_dir=src)
    if output_path is None:
        output_path = pathlib.Path.cwd() / config.name

    final_path: pathlib.Path = build_bundle(
        config=config,
        scripts=scripts,
        output_path=output_path,
        base_dir=src,
        toolchain=resolve_toolchain(config.toolchain),
        logger=logger,
    )
    logger.info(f"shpack: version {config.version} (fresh build, no shared cache)")
    return final_path


def init_project(project_dir: pathlib.Path, *, logger: logging.Logger | None = None) -> pathlib.Path:
    """Scaffold a new project: ``scripts/``, ``build/``, ``shpack.yaml`` and a ``main.sh`` stub.

    :param project_dir: Directory to initialize (created if missing).
    :param logger: Optional logger for progress output.
    :returns: Absolute project directory.
    :raises ConfigError: If ``shpack.yaml`` already exists.
    :raises BundleIOError: If a directory or file cannot be created.
    """

    if logger is None:
        logger = logging.getLogger("shpack")

    root: pathlib.Path = pathlib.Path(os.path.abspath(project_dir))
    config_path: pathlib.Path = root / CONFIG_FILENAME
    if config_path.exists() is True:
        raise ConfigError(f"{config_path} already exists; refusing to overwrite it.")

    try:
        for name in ("scripts", "build"):
            (root / name).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BundleIOError(f"Failed to create project directories in {root}: {exc}") from exc

    write_default_config(config_path)

    main_script: pathlib.Path = root / "scripts" / "main.sh"
    if main_script.exists() is False:
        try:
            main_script.write_text(SAMPLE_MAIN_SCRIPT, encoding="utf-8")
            main_script.chmod(0o755)
        except OSError as exc:
            raise BundleIOError(f"Failed to create {main_script}: {exc}") from exc

    logger.info(f"shpack: initialized project in {root}")
    return root


def _stage_scripts(*, records: list[ScriptRecord], dst: pathlib.Path) -> CopyStats:
    """Copy every script's bytes into the workspace at its relative path.

    :param records: Scripts to stage.
    :param dst: Destination directory.
    :returns: Copy statistics.
    :raises BundleIOError: If a file or directory cannot be written.
    """

    files_copied: int = 0
    bytes_copied: int = 0
    for record in records:
        dest_path: pathlib.Path = dst.joinpath(*pathlib.PurePosixPath(record.relpath).parts)
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            dest_path.write_bytes(record.content)
        except OSError as exc:
            raise BundleIOError(f"Failed to copy script {record.relpath} to {dest_path}: {exc}") from exc
        files_copied += 1
        bytes_copied += len(record.content)
    return CopyStats(files_copied=files_copied, bytes_copied=bytes_copied)


def _load_staged(*, records: list[ScriptRecord], src: pathlib.Path) -> list[ScriptRecord]:
    """Read the staged copies back; these are the bytes the bundle embeds.

    :param records: Scripts that were staged.
    :param src: Staging directory.
    :returns: Records whose content comes from the staged files.
    :raises BundleIOError: If a staged file cannot be read.
    """

    staged: list[ScriptRecord] = []
    for record in records:
        path: pathlib.Path = src.joinpath(*pathlib.PurePosixPath(record.relpath).parts)
        try:
            content: bytes = path.read_bytes()
        except OSError as exc:
            raise BundleIOError(f"Failed to read staged script {path}: {exc}") from exc
        staged.append(replace(record, content=content))
    return staged


def _install_artifact(*, artifact: pathlib.Path, final_path: pathlib.Path) -> None:
    """Move the compiled executable to its final location.

    :param artifact: Executable produced inside the workspace.
    :param final_path: Absolute destination path.
    :raises BundleIOError: If the move fails.
    """

    try:
        final_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(artifact), str(final_path))
        final_path.chmod(0o755)
    except OSError as exc:
        raise BundleIOError(f"Failed to write executable {final_path}: {exc}") from exc
