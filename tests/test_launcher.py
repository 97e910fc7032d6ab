from __future__ import annotations

import hashlib
import os
import pathlib
import subprocess
import sys

import pytest

from shpack.config import BundleConfig
from shpack.discover import ScriptRecord
from shpack.generator import render_bundle_source

from conftest import load_bundle

MAIN_SH = b'#!/bin/sh\necho "$@"\n'


def _bundle(scripts: dict[str, bytes], *, entry: str = "main.sh", name: str = "demo", version: str = "1.0.0") -> dict:
    config = BundleConfig(name=name, entry=entry, scripts=".", version=version)
    records = [ScriptRecord(relpath=k, identifier="", content=v) for k, v in scripts.items()]
    return load_bundle(render_bundle_source(config=config, records=records, entry_relpath=entry))


def _expected_cache(cache_home: pathlib.Path, name: str, version: str) -> pathlib.Path:
    return cache_home / name / hashlib.sha256(version.encode("utf-8")).hexdigest()[0:8]


def test_cache_dir_uses_xdg_cache_home(cache_home: pathlib.Path) -> None:
    ns = _bundle({"main.sh": MAIN_SH})
    assert ns["cache_dir"]() == _expected_cache(cache_home, "demo", "1.0.0")


def test_cache_dir_defaults_to_home_cache(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    ns = _bundle({"main.sh": MAIN_SH})
    assert ns["cache_dir"]() == _expected_cache(tmp_path / ".cache", "demo", "1.0.0")


def test_relative_xdg_cache_home_is_ignored(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CACHE_HOME", "relative/cache")
    monkeypatch.setenv("HOME", str(tmp_path))
    ns = _bundle({"main.sh": MAIN_SH})
    assert ns["cache_root"]() == tmp_path / ".cache"


def test_versions_get_distinct_cache_dirs(cache_home: pathlib.Path) -> None:
    a = _bundle({"main.sh": MAIN_SH}, version="1.0.0")["cache_dir"]()
    b = _bundle({"main.sh": MAIN_SH}, version="1.0.1")["cache_dir"]()
    assert a != b
    assert a.parent == b.parent


def test_unknown_home_is_fatal(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.delenv("XDG_CACHE_HOME", raising=False)

    def no_home(cls):
        raise RuntimeError("Could not determine home directory.")

    monkeypatch.setattr(pathlib.Path, "home", classmethod(no_home))
    ns = _bundle({"main.sh": MAIN_SH})

    assert ns["main"]([]) == 1
    assert "demo: cannot determine home directory" in capsys.readouterr().err


def test_run_extracts_and_forwards_arguments(cache_home: pathlib.Path, capfd: pytest.CaptureFixture[str]) -> None:
    scripts = {"main.sh": MAIN_SH, "lib/helpers.sh": b"#!/bin/sh\necho helper\n"}
    ns = _bundle(scripts)

    assert ns["main"](["a", "b"]) == 0
    assert capfd.readouterr().out == "a b\n"

    root = _expected_cache(cache_home, "demo", "1.0.0")
    for relpath, content in scripts.items():
        target = root / relpath
        assert target.read_bytes() == content
        assert os.access(target, os.X_OK) is True
    assert [p.name for p in root.rglob(".shpack-*")] == []


def test_second_run_skips_extraction(cache_home: pathlib.Path, capfd: pytest.CaptureFixture[str]) -> None:
    ns = _bundle({"main.sh": MAIN_SH, "lib/helpers.sh": b"echo helper\n"})
    assert ns["main"]([]) == 0
    root = ns["cache_dir"]()
    assert ns["needs_extraction"](root, ns["_SCRIPTS"]) is False

    # Presence is all that is checked, so a hand edit survives the next run.
    (root / "lib" / "helpers.sh").write_bytes(b"echo edited\n")
    assert ns["main"]([]) == 0
    assert (root / "lib" / "helpers.sh").read_bytes() == b"echo edited\n"


def test_deleted_file_is_restored(cache_home: pathlib.Path, capfd: pytest.CaptureFixture[str]) -> None:
    ns = _bundle({"main.sh": MAIN_SH, "lib/helpers.sh": b"echo helper\n"})
    assert ns["main"]([]) == 0
    root = ns["cache_dir"]()

    (root / "lib" / "helpers.sh").unlink()
    assert ns["needs_extraction"](root, ns["_SCRIPTS"]) is True
    assert ns["main"]([]) == 0
    assert (root / "lib" / "helpers.sh").read_bytes() == b"echo helper\n"


@pytest.mark.parametrize("code", [0, 1, 7, 255])
def test_exit_code_is_propagated(cache_home: pathlib.Path, code: int) -> None:
    ns = _bundle({"main.sh": f"#!/bin/sh\nexit {code}\n".encode()})
    assert ns["main"]([]) == code


def test_child_environment_and_working_directory(
    cache_home: pathlib.Path,
    capfd: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("SHPACK_TEST_PASSTHROUGH", "kept")
    script = b'#!/bin/sh\necho "$SHPACK_SCRIPT_DIR|$SHPACK_VERSION|$SHPACK_TEST_PASSTHROUGH|$(pwd -P)"\n'
    ns = _bundle({"main.sh": script}, version="2.3.4")

    assert ns["main"]([]) == 0

    root = _expected_cache(cache_home, "demo", "2.3.4")
    script_dir, version, passthrough, cwd = capfd.readouterr().out.strip().split("|")
    assert script_dir == str(root)
    assert version == "2.3.4"
    assert passthrough == "kept"
    assert pathlib.Path(cwd) == root.resolve()


def test_script_without_shebang_runs_under_sh(cache_home: pathlib.Path, capfd: pytest.CaptureFixture[str]) -> None:
    ns = _bundle({"main.sh": b"echo no-shebang\n"})
    assert ns["main"]([]) == 0
    assert capfd.readouterr().out == "no-shebang\n"


def test_signal_termination_is_reported(cache_home: pathlib.Path, capfd: pytest.CaptureFixture[str]) -> None:
    ns = _bundle({"main.sh": b"#!/bin/sh\nkill -9 $$\n"})
    assert ns["main"]([]) == 1
    assert "terminated by signal 9" in capfd.readouterr().err


def test_unwritable_cache_is_fatal(
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("XDG_CACHE_HOME", str(blocker))
    ns = _bundle({"main.sh": MAIN_SH})

    assert ns["main"]([]) == 1
    assert "demo: cannot create cache directory" in capsys.readouterr().err


def test_unsafe_paths_are_refused(tmp_path: pathlib.Path) -> None:
    ns = _bundle({"main.sh": MAIN_SH})
    for relpath in ("../escape.sh", "/etc/passwd", "a\\b.sh", ""):
        with pytest.raises(ns["RuntimeExtractError"]):
            ns["_target_path"](tmp_path, relpath)


def test_bundle_runs_as_a_program(tmp_path: pathlib.Path) -> None:
    config = BundleConfig(name="demo", entry="main.sh", scripts=".", version="1.0.0")
    records = [ScriptRecord(relpath="main.sh", identifier="main_sh", content=b'#!/bin/sh\necho "$@"\nexit 3\n')]
    program = tmp_path / "bundle.py"
    program.write_text(render_bundle_source(config=config, records=records, entry_relpath="main.sh"), encoding="utf-8")

    env = dict(os.environ, XDG_CACHE_HOME=str(tmp_path / "cache"))
    proc = subprocess.run(
        [sys.executable, str(program), "x", "y z"],
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )

    assert proc.returncode == 3
    assert proc.stdout == "x y z\n"


def test_stdin_is_passed_through(tmp_path: pathlib.Path) -> None:
    config = BundleConfig(name="demo", entry="main.sh", scripts=".", version="1.0.0")
    records = [ScriptRecord(relpath="main.sh", identifier="main_sh", content=b"#!/bin/sh\ncat\n")]
    program = tmp_path / "bundle.py"
    program.write_text(render_bundle_source(config=config, records=records, entry_relpath="main.sh"), encoding="utf-8")

    payload = "payload line 1\npayload line 2 \t with tabs\n"
    env = dict(os.environ, XDG_CACHE_HOME=str(tmp_path / "cache"))
    proc = subprocess.run(
        [sys.executable, str(program)],
        input=payload,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )

    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == payload


@pytest.mark.parametrize(("umask", "mode"), [(0o022, 0o755), (0o077, 0o700)])
def test_extracted_scripts_respect_umask(tmp_path: pathlib.Path, umask: int, mode: int) -> None:
    ns = _bundle({"main.sh": MAIN_SH, "lib/helpers.sh": b"echo helper\n"})
    root = tmp_path / "cache"

    previous = os.umask(umask)
    try:
        ns["extract_scripts"](root, ns["_SCRIPTS"])
    finally:
        os.umask(previous)

    assert (root / "main.sh").stat().st_mode & 0o777 == mode
    assert (root / "lib" / "helpers.sh").stat().st_mode & 0o777 == mode
