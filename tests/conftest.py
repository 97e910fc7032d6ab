from __future__ import annotations

import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shpack.config import BundleConfig  # noqa: E402

MAIN_SH = '#!/bin/sh\necho "$@"\n'
HELPERS_SH = "#!/bin/sh\nhelper() { echo helper; }\n"


def write_script(path: pathlib.Path, content: str) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


def load_bundle(source: str) -> dict:
    """Execute rendered bundle source as a module namespace (``main`` is not run)."""

    namespace: dict = {"__name__": "shpack_bundle"}
    exec(compile(source, "<shpack-bundle>", "exec"), namespace)
    return namespace


@pytest.fixture()
def demo_project(tmp_path: pathlib.Path) -> pathlib.Path:
    project = tmp_path / "demo"
    write_script(project / "scripts" / "main.sh", MAIN_SH)
    write_script(project / "scripts" / "lib" / "helpers.sh", HELPERS_SH)
    (project / "shpack.yaml").write_text(
        "name: demo\nentry: scripts/main.sh\nscripts: scripts\nversion: 1.0.0\n",
        encoding="utf-8",
    )
    return project


@pytest.fixture()
def demo_config() -> BundleConfig:
    return BundleConfig(name="demo", entry="scripts/main.sh", scripts="scripts", version="1.0.0")


@pytest.fixture()
def cache_home(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    cache = tmp_path / "xdg-cache"
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache))
    return cache
