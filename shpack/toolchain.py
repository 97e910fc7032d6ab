"""External toolchains that turn a prepared workspace into an executable.

A workspace handed to a toolchain always looks like::

    <workspace>/
        bundle/__main__.py   generated launcher + embedded scripts
        scripts/...          copied scripts (build input only)

Each toolchain first initializes a build module descriptor named after the
tool, then compiles ``bundle/`` into ``<workspace>/dist/<name>``.
"""

from dataclasses import dataclass
import json
import logging
import pathlib
import shutil
import subprocess
import sys
from typing import Protocol

from shpack.errors import CompileError, ConfigError, ModuleInitError, ToolchainError

BUNDLE_DIRNAME: str = "bundle"
DIST_DIRNAME: str = "dist"
DEFAULT_INTERPRETER: str = "/usr/bin/env python3"


class Toolchain(Protocol):
    """Compiler backend used by :func:`shpack.builder.build_bundle`."""

    name: str

    def init_module(self, *, workspace: pathlib.Path, module_name: str, version: str, logger: logging.Logger) -> None:
        ...

    def compile(self, *, workspace: pathlib.Path, module_name: str, logger: logging.Logger) -> pathlib.Path:
        ...


@dataclass(frozen=True, slots=True)
class ZipappToolchain:
    """Produce an executable zip application with ``python -m zipapp``.

    :ivar interpreter: Shebang interpreter written into the archive.
    :ivar python: Python executable used to run ``zipapp``.
    """

    interpreter: str = DEFAULT_INTERPRETER
    python: str = sys.executable
    name: str = "zipapp"

    def init_module(self, *, workspace: pathlib.Path, module_name: str, version: str, logger: logging.Logger) -> None:
        """Write ``pyproject.toml`` naming the bundle project after the tool.

        :raises ModuleInitError: If the descriptor cannot be written.
        """

        descriptor: pathlib.Path = workspace / "pyproject.toml"
        text: str = (
            "[project]\n"
            f"name = {json.dumps(module_name)}\n"
            f"version = {json.dumps(version)}\n"
            'requires-python = ">=3.10"\n'
            "dependencies = []\n"
        )
        try:
            descriptor.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ModuleInitError(f"Failed to write module descriptor {descriptor}: {exc}") from exc
        logger.debug(f"shpack: wrote module descriptor {descriptor}")

    def compile(self, *, workspace: pathlib.Path, module_name: str, logger: logging.Logger) -> pathlib.Path:
        """Archive ``bundle/`` into ``dist/<module_name>``.

        :returns: Path to the produced executable.
        :raises CompileError: If ``zipapp`` fails.
        """

        out_path: pathlib.Path = workspace / DIST_DIRNAME / module_name
        out_path.parent.mkdir(parents=True, exist_ok=True)
        cmd: list[str] = [
            self.python,
            "-m",
            "zipapp",
            str(workspace / BUNDLE_DIRNAME),
            "-o",
            str(out_path),
            "-p",
            self.interpreter,
            "-c",
        ]
        _run_tool(cmd, cwd=workspace, error_cls=CompileError, what="zipapp", logger=logger)
        if out_path.is_file() is False:
            raise CompileError(f"zipapp did not produce {out_path}")
        return out_path


@dataclass(frozen=True, slots=True)
class PyInstallerToolchain:
    """Produce a native single-file binary with PyInstaller.

    :ivar python: Python executable with PyInstaller installed.
    :ivar makespec: ``pyi-makespec`` executable.
    """

    python: str = sys.executable
    makespec: str = "pyi-makespec"
    name: str = "pyinstaller"

    def init_module(self, *, workspace: pathlib.Path, module_name: str, version: str, logger: logging.Logger) -> None:
        """Generate ``<module_name>.spec`` with ``pyi-makespec``.

        :raises ModuleInitError: If ``pyi-makespec`` fails.
        """

        cmd: list[str] = [
            self.makespec,
            "--onefile",
            "--name",
            module_name,
            "--specpath",
            str(workspace),
            str(workspace / BUNDLE_DIRNAME / "__main__.py"),
        ]
        _run_tool(cmd, cwd=workspace, error_cls=ModuleInitError, what="pyi-makespec", logger=logger)

    def compile(self, *, workspace: pathlib.Path, module_name: str, logger: logging.Logger) -> pathlib.Path:
        """Build the spec file into ``dist/<module_name>``.

        :returns: Path to the produced executable.
        :raises CompileError: If PyInstaller fails.
        """

        spec_path: pathlib.Path = workspace / f"{module_name}.spec"
        dist_dir: pathlib.Path = workspace / DIST_DIRNAME
        cmd: list[str] = [
            self.python,
            "-m",
            "PyInstaller",
            "--noconfirm",
            "--clean",
            "--distpath",
            str(dist_dir),
            "--workpath",
            str(workspace / "build"),
            str(spec_path),
        ]
        _run_tool(cmd, cwd=workspace, error_cls=CompileError, what="PyInstaller", logger=logger)

        out_path: pathlib.Path = dist_dir / module_name
        if out_path.is_file() is False and out_path.with_suffix(".exe").is_file() is True:
            out_path = out_path.with_suffix(".exe")
        if out_path.is_file() is False:
            raise CompileError(f"PyInstaller did not produce {out_path}")
        return out_path


_TOOLCHAINS: dict[str, type] = {
    "zipapp": ZipappToolchain,
    "pyinstaller": PyInstallerToolchain,
}


def available_toolchains() -> list[str]:
    """Return the names accepted by :func:`resolve_toolchain`."""

    return sorted(_TOOLCHAINS)


def resolve_toolchain(name: str) -> Toolchain:
    """Resolve a toolchain name into an instance.

    :param name: Toolchain name (case-insensitive).
    :returns: Toolchain instance.
    :raises ConfigError: If the name is unknown.
    """

    cls: type | None = _TOOLCHAINS.get(name.strip().lower())
    if cls is None:
        raise ConfigError(
            f"Unknown toolchain {name!r}; expected one of: {', '.join(available_toolchains())}."
        )
    return cls()


def _run_tool(
    cmd: list[str],
    *,
    cwd: pathlib.Path,
    error_cls: type[ToolchainError],
    what: str,
    logger: logging.Logger,
) -> str:
    """Run an external tool, capturing combined output.

    :param cmd: Command line.
    :param cwd: Working directory for the tool.
    :param error_cls: Error type raised on failure.
    :param what: Human-readable tool name for messages.
    :param logger: Logger for debug output.
    :returns: Captured output.
    :raises ToolchainError: If the tool is missing or exits non-zero.
    """

    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"shpack: running {what}: {' '.join(cmd)}")

    if shutil.which(cmd[0]) is None and pathlib.Path(cmd[0]).is_file() is False:
        raise error_cls(f"{what} is not available: {cmd[0]!r} was not found on PATH")

    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise error_cls(f"Failed to run {what}: {exc}") from exc

    output: str = proc.stdout or ""
    if proc.returncode != 0:
        raise error_cls(f"{what} failed (exit={proc.returncode}): {' '.join(cmd)}", output=output)
    if len(output.strip()) > 0 and logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(output.rstrip())
    return output
