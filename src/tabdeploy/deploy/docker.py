"""
Container build files for a pinned model.

``prepare_docker`` writes a self-contained build context: the pinned model
version copied into ``models/``, the tabdeploy source as a local package in
``tabdeploy/``, an ``app.py`` that serves the model, a ``requirements.txt``
of index-hosted pins and a ``Dockerfile``. Building and running the image
is left to the user.
"""

import re
import shutil
from importlib.metadata import PackageNotFoundError, requires
from pathlib import Path

import tabdeploy
from tabdeploy.deploy.board import FolderBoard
from tabdeploy.deploy.vetting import required_packages
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

CONTAINER_BOARD = "/opt/ml/models"
LOCAL_PACKAGE = "tabdeploy"

_REQ_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")

APP_TEMPLATE = '''\
"""Serve the pinned model {name} ({version})."""

from tabdeploy.deploy.board import FolderBoard, vetiver_pin_read
from tabdeploy.deploy.server import run_api
from tabdeploy.utils.logging import configure_logging

configure_logging("INFO", json_output=True)

board = FolderBoard("{board}", versioned=True)
model = vetiver_pin_read(board, "{name}", version="{version}")

if __name__ == "__main__":
    run_api(model, host="0.0.0.0", port={port})
'''

DOCKERFILE_TEMPLATE = """\
# Generated by tabdeploy for pin {name} ({version})
FROM python:{python_version}-slim

ENV PYTHONUNBUFFERED=1
WORKDIR /opt/ml

COPY requirements.txt /opt/ml/requirements.txt
RUN pip install --no-cache-dir --upgrade -r /opt/ml/requirements.txt

COPY {package}/ /opt/ml/{package}/
RUN pip install --no-cache-dir /opt/ml/{package}

COPY models/ {board}/
COPY app.py /opt/ml/app.py

EXPOSE {port}
CMD ["python", "/opt/ml/app.py"]
"""

PYPROJECT_TEMPLATE = """\
[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "{package}"
version = "{version}"
requires-python = ">=3.10"
dependencies = [
{dependencies}
]

[tool.hatch.build.targets.wheel]
packages = ["src/{package}"]
"""


def requirement_name(requirement: str) -> str:
    """Distribution name of a requirement string, normalized."""
    match = _REQ_NAME_RE.match(requirement)
    if match is None:
        msg = f"Not a requirement: {requirement!r}"
        raise ValueError(msg)
    return re.sub(r"[-_.]+", "-", match.group(1)).lower()


def runtime_dependencies(distribution: str = LOCAL_PACKAGE) -> list[str]:
    """Declared runtime requirements of an installed distribution (no extras)."""
    try:
        declared = requires(distribution) or []
    except PackageNotFoundError:
        log.warning("Distribution metadata not found", distribution=distribution)
        return []
    return [r for r in declared if "extra ==" not in r and "extra==" not in r]


def container_requirements(required_pkgs: list[str]) -> list[str]:
    """
    Index-hosted requirements for the image.

    The model's pinned packages come first, followed by installed versions
    of tabdeploy's own runtime dependencies. tabdeploy itself is installed
    from the build context, so it is left out.
    """
    seen = {LOCAL_PACKAGE}
    out = []
    deps = [requirement_name(r) for r in runtime_dependencies()]
    for requirement in [*required_pkgs, *required_packages(deps)]:
        name = requirement_name(requirement)
        if name in seen:
            continue
        seen.add(name)
        out.append(requirement)
    return out


def _copy_package(out: Path) -> Path:
    """Copy the tabdeploy source into the build context as an installable project."""
    project = out / LOCAL_PACKAGE
    if project.exists():
        shutil.rmtree(project)
    source = Path(tabdeploy.__file__).parent
    shutil.copytree(
        source,
        project / "src" / LOCAL_PACKAGE,
        ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
    )
    dependencies = ",\n".join(f'    "{r}"' for r in runtime_dependencies())
    (project / "pyproject.toml").write_text(
        PYPROJECT_TEMPLATE.format(
            package=LOCAL_PACKAGE,
            version=tabdeploy.__version__,
            dependencies=dependencies,
        ),
        encoding="utf-8",
    )
    return project


def prepare_docker(
    board: FolderBoard,
    name: str,
    path: str | Path = ".",
    version: str | None = None,
    port: int = 8000,
    python_version: str = "3.11",
) -> list[Path]:
    """
    Write a container build context for a pinned model.

    Args:
        board: Board holding the pin.
        name: Pin name.
        path: Output directory.
        version: Pin version (default: latest).
        port: Port the API listens on inside the container.
        python_version: Base image Python version.

    Returns:
        Paths written: app.py, requirements.txt, Dockerfile, the copied
        model directory and the local tabdeploy project.

    Raises:
        PinNotFoundError: If the pin or version does not exist.
    """
    meta = board.pin_meta(name, version)
    version = meta["version"]
    out = Path(path)
    out.mkdir(parents=True, exist_ok=True)

    model_dir = out / "models" / name / version
    if model_dir.exists():
        shutil.rmtree(model_dir)
    shutil.copytree(meta["local"]["dir"], model_dir)

    project = _copy_package(out)

    required = container_requirements((meta.get("user") or {}).get("required_pkgs") or [])
    requirements = out / "requirements.txt"
    requirements.write_text("\n".join(required) + "\n", encoding="utf-8")

    context = {
        "name": name,
        "version": version,
        "port": port,
        "python_version": python_version,
        "board": CONTAINER_BOARD,
        "package": LOCAL_PACKAGE,
    }
    app = out / "app.py"
    app.write_text(APP_TEMPLATE.format(**context), encoding="utf-8")

    dockerfile = out / "Dockerfile"
    dockerfile.write_text(DOCKERFILE_TEMPLATE.format(**context), encoding="utf-8")

    log.info(
        "Prepared container build context",
        name=name,
        version=version,
        path=str(out),
        n_requirements=len(required),
    )
    return [app, requirements, dockerfile, model_dir, project]
