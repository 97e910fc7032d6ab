"""Runtime launcher template.

The text below becomes ``__main__.py`` of every generated bundle. It only uses
the standard library, so the compiled executable has no dependencies beyond a
Python 3 interpreter (zipapp) or none at all (PyInstaller).

Placeholders are replaced by :mod:`shpack.generator` with Python literals.
"""

import textwrap

NAME_MARKER: str = "__SHPACK_NAME__"
VERSION_MARKER: str = "__SHPACK_VERSION__"
ENTRY_MARKER: str = "__SHPACK_ENTRY__"
EMBEDDED_MARKER: str = "__SHPACK_EMBEDDED_SCRIPTS__"
TABLE_MARKER: str = "__SHPACK_SCRIPT_TABLE__"


RUNTIME_TEMPLATE: str = textwrap.dedent(
    r'''
    #!/usr/bin/env python3
    # This file was generated by shpack. Do not edit.
    #
    # The bundled shell scripts are embedded below as base64 literals. At runtime
    # they are extracted into a per-version cache directory and the entry script
    # is executed with this process's arguments, streams and environment.

    import base64
    import errno
    import hashlib
    import os
    import pathlib
    import secrets
    import signal
    import subprocess
    import sys
    import threading


    _NAME: str = __SHPACK_NAME__
    _VERSION: str = __SHPACK_VERSION__
    _ENTRY: str = __SHPACK_ENTRY__

    SCRIPT_DIR_ENV: str = "SHPACK_SCRIPT_DIR"
    VERSION_ENV: str = "SHPACK_VERSION"


    __SHPACK_EMBEDDED_SCRIPTS__

    _SCRIPTS: dict[str, bytes] = {
    __SHPACK_SCRIPT_TABLE__
    }


    class LauncherError(Exception):
        """Fatal launcher failure, reported on stderr with exit code 1."""


    class RuntimeCacheError(LauncherError):
        """Raised when the cache directory cannot be determined."""


    class RuntimeExtractError(LauncherError):
        """Raised when the embedded scripts cannot be written to the cache."""


    class RuntimeExecError(LauncherError):
        """Raised when the entry script cannot be started or dies abnormally."""


    def cache_root() -> pathlib.Path:
        """Return the per-user cache root.

        ``$XDG_CACHE_HOME`` wins when it is set to an absolute path, otherwise
        ``~/.cache`` is used.

        :returns: Cache root directory.
        :raises RuntimeCacheError: If the home directory cannot be determined.
        """

        xdg: str | None = os.environ.get("XDG_CACHE_HOME")
        if xdg is not None and len(xdg) > 0 and os.path.isabs(xdg) is True:
            return pathlib.Path(xdg)

        try:
            home: pathlib.Path = pathlib.Path.home()
        except (RuntimeError, KeyError) as exc:
            raise RuntimeCacheError(f"cannot determine home directory: {exc}") from exc
        if home.is_absolute() is False:
            raise RuntimeCacheError(f"cannot determine home directory (got {str(home)!r})")
        return home / ".cache"


    def version_key(version: str) -> str:
        """Return the cache key for a version string.

        :param version: Version label.
        :returns: First 8 hex chars of the SHA-256 of ``version``.
        """

        return hashlib.sha256(version.encode("utf-8")).hexdigest()[0:8]


    def cache_dir() -> pathlib.Path:
        """Return the extraction directory for this bundle."""

        return cache_root() / _NAME / version_key(_VERSION)


    def _target_path(root: pathlib.Path, relpath: str) -> pathlib.Path:
        """Map an embedded script path to its location under ``root``.

        :param root: Cache directory.
        :param relpath: Embedded relative path (POSIX).
        :returns: Target path.
        :raises RuntimeExtractError: If the path would escape ``root``.
        """

        p = pathlib.PurePosixPath(relpath)
        if "\\" in relpath or p.is_absolute() is True or ".." in p.parts or len(p.parts) == 0:
            raise RuntimeExtractError(f"refusing to extract unsafe path: {relpath!r}")
        return root.joinpath(*p.parts)


    def needs_extraction(root: pathlib.Path, scripts: dict[str, bytes]) -> bool:
        """Return whether any embedded script is missing from ``root``.

        Only presence is checked, not content.
        """

        if root.is_dir() is False:
            return True
        for relpath in scripts:
            if _target_path(root, relpath).exists() is False:
                return True
        return False


    def extract_scripts(root: pathlib.Path, scripts: dict[str, bytes]) -> None:
        """Write every embedded script under ``root`` with mode 0755, less the umask.

        Each file is written to a temporary name and renamed into place, so a
        concurrent run never sees a half-written script.

        :param root: Cache directory.
        :param scripts: Mapping of relative path to content.
        :raises RuntimeExtractError: If a directory or file cannot be written.
        """

        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RuntimeExtractError(f"cannot create cache directory {root}: {exc}") from exc

        for relpath, content in scripts.items():
            target: pathlib.Path = _target_path(root, relpath)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                tmp_name: str = os.path.join(target.parent, f".shpack-{target.name}.{secrets.token_hex(6)}")
                fd: int = os.open(tmp_name, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o755)
                try:
                    with os.fdopen(fd, "wb") as f:
                        f.write(content)
                    os.replace(tmp_name, target)
                except OSError:
                    if os.path.exists(tmp_name) is True:
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                raise RuntimeExtractError(f"cannot write {target}: {exc}") from exc


    def child_environment(root: pathlib.Path) -> dict[str, str]:
        """Build the entry script's environment.

        :param root: Cache directory.
        :returns: This process's environment plus the shpack variables.
        """

        env: dict[str, str] = dict(os.environ)
        env[SCRIPT_DIR_ENV] = str(root)
        env[VERSION_ENV] = _VERSION
        return env


    def _spawn(cmd: list[str], *, cwd: pathlib.Path, env: dict[str, str]) -> subprocess.Popen:
        """Start the entry script with inherited standard streams.

        Scripts without a shebang are handed to ``/bin/sh``, as a shell would.

        :raises RuntimeExecError: If the process cannot be started.
        """

        try:
            return subprocess.Popen(cmd, cwd=cwd, env=env)
        except OSError as exc:
            if exc.errno != errno.ENOEXEC:
                raise RuntimeExecError(f"cannot execute {cmd[0]}: {exc}") from exc

        try:
            return subprocess.Popen(["/bin/sh", *cmd], cwd=cwd, env=env)
        except OSError as exc:
            raise RuntimeExecError(f"cannot execute {cmd[0]} with /bin/sh: {exc}") from exc


    def _wait(proc: subprocess.Popen) -> int:
        """Wait for the child, relaying termination signals to it.

        SIGINT is ignored here because the terminal already delivers it to the
        whole foreground process group.

        :returns: The child's return code.
        """

        if threading.current_thread() is not threading.main_thread():
            return proc.wait()

        def relay(signum: int, frame: object) -> None:
            proc.send_signal(signum)

        previous: dict[int, object] = {}
        previous[signal.SIGINT] = signal.signal(signal.SIGINT, signal.SIG_IGN)
        for name in ("SIGTERM", "SIGHUP"):
            signum: int | None = getattr(signal, name, None)
            if signum is not None:
                previous[signum] = signal.signal(signum, relay)
        try:
            return proc.wait()
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)


    def run(argv: list[str]) -> int:
        """Extract the scripts if needed and run the entry script.

        :param argv: Arguments forwarded verbatim to the entry script.
        :returns: The entry script's exit code.
        :raises LauncherError: On any cache, extraction or exec failure.
        """

        root: pathlib.Path = cache_dir()
        if needs_extraction(root, _SCRIPTS) is True:
            extract_scripts(root, _SCRIPTS)

        entry: pathlib.Path = _target_path(root, _ENTRY)
        proc = _spawn([str(entry), *argv], cwd=root, env=child_environment(root))
        code: int = _wait(proc)
        if code < 0:
            raise RuntimeExecError(f"{_ENTRY} was terminated by signal {-code}")
        return code


    def main(argv: list[str] | None = None) -> int:
        """Program entrypoint."""

        if argv is None:
            argv = sys.argv[1:]
        try:
            return run(list(argv))
        except LauncherError as exc:
            sys.stderr.write(f"{_NAME}: {exc}\n")
            return 1


    if __name__ == "__main__":
        sys.exit(main())
    '''
).lstrip()
