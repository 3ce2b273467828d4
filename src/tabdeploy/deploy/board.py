"""
Versioned folder pin board.

Layout::

    <board>/<name>/<version>/data.txt      YAML metadata
    <board>/<name>/<version>/<name>.joblib  artifact (or .json / .csv)

Versions are named ``YYYYMMDDTHHMMSSZ-<hash5>`` from the UTC write time and
the artifact's content hash, so they sort chronologically. Writing content
identical to the latest version is a no-op unless forced.
"""

import json
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import joblib
import pandas as pd
import yaml

from tabdeploy.deploy.errors import PinError, PinNotFoundError
from tabdeploy.deploy.vetting import DeployableModel
from tabdeploy.utils.hashing import hash_file_content
from tabdeploy.utils.logging import get_logger

log = get_logger(__name__)

PinType = Literal["joblib", "json", "csv"]

META_FILE = "data.txt"
API_VERSION = 1
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _check_name(name: str) -> None:
    if not _NAME_RE.match(name):
        msg = f"Invalid pin name: {name!r} (letters, digits, '.', '_' and '-' only)"
        raise PinError(msg)


def make_version(created: datetime, content_hash: str) -> str:
    """Version string for a write time and content hash."""
    return f"{created.astimezone(timezone.utc):%Y%m%dT%H%M%SZ}-{content_hash[:5]}"


def _write_artifact(obj: Any, path: Path, type: PinType) -> None:
    if type == "joblib":
        joblib.dump(obj, path)
    elif type == "json":
        with path.open("w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2, sort_keys=True, default=str)
    elif type == "csv":
        if not isinstance(obj, pd.DataFrame):
            msg = "Only DataFrames can be pinned as csv"
            raise PinError(msg)
        obj.to_csv(path, index=False)
    else:
        msg = f"Unknown pin type: {type}"
        raise PinError(msg)


def _read_artifact(path: Path, type: PinType) -> Any:
    if type == "joblib":
        return joblib.load(path)
    if type == "json":
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    if type == "csv":
        return pd.read_csv(path)
    msg = f"Unknown pin type: {type}"
    raise PinError(msg)


class FolderBoard:
    """
    Pin board stored in a local directory.

    Attributes:
        path: Board directory (created on first write).
        versioned: Keep every version by default.
    """

    def __init__(self, path: str | Path, versioned: bool = True) -> None:
        self.path = Path(path)
        self.versioned = versioned

    def __repr__(self) -> str:
        return f"FolderBoard(path={str(self.path)!r}, versioned={self.versioned})"

    def _pin_dir(self, name: str) -> Path:
        _check_name(name)
        return self.path / name

    def _version_dirs(self, name: str) -> list[Path]:
        pin_dir = self._pin_dir(name)
        if not pin_dir.is_dir():
            return []
        return [p for p in pin_dir.iterdir() if p.is_dir() and (p / META_FILE).exists()]

    def _read_meta_file(self, version_dir: Path) -> dict[str, Any]:
        with (version_dir / META_FILE).open(encoding="utf-8") as f:
            meta = yaml.safe_load(f) or {}
        meta["version"] = version_dir.name
        return meta

    def _sorted_versions(self, name: str) -> list[dict[str, Any]]:
        metas = [self._read_meta_file(d) for d in self._version_dirs(name)]
        return sorted(metas, key=lambda m: (str(m.get("created", "")), m["version"]))

    def _resolve(self, name: str, version: str | None) -> Path:
        versions = self._sorted_versions(name)
        if not versions:
            raise PinNotFoundError(name)
        if version is None:
            return self.path / name / versions[-1]["version"]
        if version not in {m["version"] for m in versions}:
            raise PinNotFoundError(name, version)
        return self.path / name / version

    def pin_exists(self, name: str) -> bool:
        """Whether a pin has at least one version."""
        return bool(self._version_dirs(name))

    def pin_list(self) -> list[str]:
        """Names of all pins on the board."""
        if not self.path.is_dir():
            return []
        return sorted(
            p.name for p in self.path.iterdir() if p.is_dir() and self.pin_exists(p.name)
        )

    def pin_versions(self, name: str) -> pd.DataFrame:
        """
        Versions of a pin, oldest first.

        Returns:
            Frame with columns version, created, hash.

        Raises:
            PinNotFoundError: If the pin does not exist.
        """
        versions = self._sorted_versions(name)
        if not versions:
            raise PinNotFoundError(name)
        return pd.DataFrame(
            {
                "version": [m["version"] for m in versions],
                "created": pd.to_datetime([m.get("created") for m in versions], utc=True),
                "hash": [m.get("pin_hash") for m in versions],
            }
        )

    def pin_meta(self, name: str, version: str | None = None) -> dict[str, Any]:
        """Metadata of a pin version (latest by default)."""
        version_dir = self._resolve(name, version)
        meta = self._read_meta_file(version_dir)
        meta["local"] = {"dir": str(version_dir)}
        return meta

    def pin_read(self, name: str, version: str | None = None) -> Any:
        """Read a pinned object (latest version by default)."""
        meta = self.pin_meta(name, version)
        path = Path(meta["local"]["dir"]) / meta["file"]
        log.debug("Reading pin", name=name, version=meta["version"])
        return _read_artifact(path, meta["type"])

    def pin_write(
        self,
        obj: Any,
        name: str,
        type: PinType = "joblib",
        title: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        versioned: bool | None = None,
        force_identical_write: bool = False,
    ) -> str:
        """
        Write an object as a new pin version.

        Args:
            obj: Object to pin.
            name: Pin name.
            type: Serialization: joblib, json or csv.
            title: Short title (default derived from name and type).
            description: Longer description.
            metadata: User metadata stored under ``user``.
            versioned: Override the board's versioning for this write.
            force_identical_write: Write even if content matches the latest version.

        Returns:
            The version written, or the latest version when nothing was written.

        Raises:
            PinError: If an unversioned write targets a pin with several versions.
        """
        pin_dir = self._pin_dir(name)
        versioned = self.versioned if versioned is None else versioned
        existing = self._sorted_versions(name)

        if not versioned and len(existing) > 1:
            msg = (
                f"Pin '{name}' has {len(existing)} versions; "
                "pass versioned=True or prune versions first"
            )
            raise PinError(msg)

        pin_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{name}.{type}"
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=pin_dir))
        try:
            artifact = staging / filename
            _write_artifact(obj, artifact, type)
            content_hash = hash_file_content(artifact)

            if existing and not force_identical_write and existing[-1].get("pin_hash") == content_hash:
                log.info(
                    "Pin content unchanged, not writing new version",
                    name=name,
                    version=existing[-1]["version"],
                )
                return existing[-1]["version"]

            created = datetime.now(timezone.utc)
            version = make_version(created, content_hash)
            meta = {
                "file": filename,
                "file_size": artifact.stat().st_size,
                "pin_hash": content_hash,
                "type": type,
                "title": title or f"{name}: a pinned {type} object",
                "description": description,
                "created": created.isoformat(),
                "api_version": API_VERSION,
                "user": metadata or {},
            }
            with (staging / META_FILE).open("w", encoding="utf-8") as f:
                yaml.safe_dump(meta, f, sort_keys=False)

            target = pin_dir / version
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        finally:
            if staging.exists():
                shutil.rmtree(staging)

        if not versioned:
            for old in existing:
                if old["version"] != version:
                    shutil.rmtree(pin_dir / old["version"])

        log.info("Wrote pin", name=name, version=version, type=type, board=str(self.path))
        return version

    def pin_version_delete(self, name: str, version: str) -> None:
        """
        Delete one version of a pin.

        Raises:
            PinNotFoundError: If the version does not exist.
            PinError: If it is the only version (use pin_delete).
        """
        version_dir = self._resolve(name, version)
        if len(self._version_dirs(name)) == 1:
            msg = f"Cannot delete the only version of '{name}'; use pin_delete"
            raise PinError(msg)
        shutil.rmtree(version_dir)
        log.info("Deleted pin version", name=name, version=version)

    def pin_versions_prune(self, name: str, n: int) -> list[str]:
        """
        Keep only the newest ``n`` versions.

        Returns:
            The deleted versions.
        """
        if n < 1:
            msg = f"n must be at least 1, got {n}"
            raise ValueError(msg)
        versions = self._sorted_versions(name)
        if not versions:
            raise PinNotFoundError(name)
        to_delete = [m["version"] for m in versions[:-n]]
        for version in to_delete:
            shutil.rmtree(self.path / name / version)
        log.info("Pruned pin versions", name=name, deleted=len(to_delete), kept=len(versions) - len(to_delete))
        return to_delete

    def pin_delete(self, name: str) -> None:
        """Delete a pin and all its versions."""
        if not self.pin_exists(name):
            raise PinNotFoundError(name)
        shutil.rmtree(self._pin_dir(name))
        log.info("Deleted pin", name=name)


def vetiver_pin_write(
    board: FolderBoard,
    model: DeployableModel,
    versioned: bool | None = None,
) -> str:
    """
    Pin a deployable model.

    Returns:
        The version written.
    """
    version = board.pin_write(
        model.to_bundle(),
        model.name,
        type="joblib",
        description=model.description,
        metadata={
            **model.metadata.get("user", {}),
            "required_pkgs": model.metadata.get("required_pkgs", []),
            "prototype": model.prototype_spec()["columns"],
        },
        versioned=versioned,
    )
    return version


def vetiver_pin_read(
    board: FolderBoard,
    name: str,
    version: str | None = None,
) -> DeployableModel:
    """Read a pinned deployable model (latest version by default)."""
    meta = board.pin_meta(name, version)
    model = DeployableModel.from_bundle(board.pin_read(name, meta["version"]))
    model.metadata["version"] = meta["version"]
    log.info("Loaded deployable model", name=name, version=meta["version"])
    return model
