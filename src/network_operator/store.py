"""Spec and status storage.

``FileSpecStore`` keeps one YAML manifest per resource key in the specs
directory (written by the user, typically synced from git) and one status
file per key in the status directory (written only by the operator). The
only write to a manifest is ``request_deletion``, used by ``netop delete``.

Manifests may be flat spec documents or Kubernetes-style wrappers::

    apiVersion: network-operator/v1
    kind: VirtualNetwork
    metadata:
      name: app-network
      deletionRequested: false
    spec:
      region: westeurope
      cidrBlock: 10.0.0.0/16
      name: app-network
      subnetCIDR: 10.0.1.0/24

SECURITY: file sizes are checked before reading and keys are validated
before they are turned into paths.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from .config import (
    MAX_MANIFEST_FILE_SIZE_BYTES,
    MAX_STATUS_FILE_SIZE_BYTES,
    VALID_RESOURCE_KEY_PATTERN,
)
from .models import NetworkManifest, NetworkSpec, NetworkStatus

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".yaml"
STATUS_SUFFIX = ".status.yaml"


class SpecStoreError(Exception):
    """Raised when a manifest or status record cannot be read or written."""

    pass


class SpecStore(Protocol):
    """Holds the desired spec and last persisted status per resource key."""

    def get_spec_and_status(self, key: str) -> tuple[NetworkSpec, NetworkStatus]: ...

    def update_status(self, key: str, status: NetworkStatus) -> None: ...

    def list_keys(self) -> list[str]: ...

    def deletion_requested(self, key: str) -> bool: ...


def validate_key(key: str) -> str:
    """Check that a resource key is safe to use as a file name.

    Raises:
        SpecStoreError: If the key does not match VALID_RESOURCE_KEY_PATTERN.
    """
    if not re.match(VALID_RESOURCE_KEY_PATTERN, key):
        raise SpecStoreError(f"Invalid resource key '{key}'")
    return key


def _format_validation_error(path: Path, e: ValidationError) -> str:
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def _read_yaml_mapping(path: Path, max_size: int) -> dict[str, Any]:
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecStoreError(f"Failed to stat {path}: {e}") from e

    if file_size > max_size:
        raise SpecStoreError(f"File exceeds maximum size of {max_size} bytes: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecStoreError(f"Failed to read {path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecStoreError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SpecStoreError(f"File must contain a YAML mapping: {path}")
    return data


def _write_atomic(path: Path, content: str, prefix: str) -> None:
    """Replace ``path`` with ``content`` through a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileSpecStore:
    """SpecStore backed by YAML files on disk."""

    def __init__(self, specs_dir: Path, status_dir: Path) -> None:
        self._specs_dir = specs_dir
        self._status_dir = status_dir

    @property
    def specs_dir(self) -> Path:
        return self._specs_dir

    @property
    def status_dir(self) -> Path:
        return self._status_dir

    def manifest_path(self, key: str) -> Path:
        return self._specs_dir / f"{validate_key(key)}{MANIFEST_SUFFIX}"

    def status_path(self, key: str) -> Path:
        return self._status_dir / f"{validate_key(key)}{STATUS_SUFFIX}"

    def list_keys(self) -> list[str]:
        """Return the keys of all manifests, sorted."""
        if not self._specs_dir.is_dir():
            return []
        keys = []
        for path in sorted(self._specs_dir.glob(f"*{MANIFEST_SUFFIX}")):
            key = path.name[: -len(MANIFEST_SUFFIX)]
            if re.match(VALID_RESOURCE_KEY_PATTERN, key):
                keys.append(key)
            else:
                logger.warning("Ignoring manifest with invalid key", extra={"path": str(path)})
        return keys

    def load_manifest(self, key: str) -> NetworkManifest:
        """Load and validate the manifest for ``key``.

        Raises:
            SpecStoreError: If the manifest is missing or invalid.
        """
        path = self.manifest_path(key)
        if not path.exists():
            raise SpecStoreError(f"Manifest not found: {path}")

        raw_data = _read_yaml_mapping(path, MAX_MANIFEST_FILE_SIZE_BYTES)

        # Flat format: the whole document is the spec
        if "spec" not in raw_data:
            raw_data = {"spec": raw_data}
        elif not isinstance(raw_data["spec"], dict):
            raise SpecStoreError(f"Spec section must be a mapping: {path}")

        try:
            return NetworkManifest.model_validate(raw_data)
        except ValidationError as e:
            raise SpecStoreError(_format_validation_error(path, e)) from e

    def load_status(self, key: str) -> NetworkStatus:
        """Load the persisted status, or a fresh Absent status if none exists."""
        path = self.status_path(key)
        if not path.exists():
            return NetworkStatus()

        raw_data = _read_yaml_mapping(path, MAX_STATUS_FILE_SIZE_BYTES)
        try:
            return NetworkStatus.model_validate(raw_data)
        except ValidationError as e:
            raise SpecStoreError(_format_validation_error(path, e)) from e

    def get_spec_and_status(self, key: str) -> tuple[NetworkSpec, NetworkStatus]:
        return self.load_manifest(key).spec, self.load_status(key)

    def deletion_requested(self, key: str) -> bool:
        return self.load_manifest(key).metadata.deletion_requested

    def request_deletion(self, key: str) -> None:
        """Set ``deletionRequested`` in the manifest of ``key``.

        Flat manifests are rewritten in the wrapped format. Comments in the
        file are not preserved.

        Raises:
            SpecStoreError: If the manifest is missing, unreadable or cannot
                be written.
        """
        path = self.manifest_path(key)
        if not path.exists():
            raise SpecStoreError(f"Manifest not found: {path}")

        raw_data = _read_yaml_mapping(path, MAX_MANIFEST_FILE_SIZE_BYTES)
        if "spec" not in raw_data:
            raw_data = {"metadata": {"name": key}, "spec": raw_data}
        metadata = raw_data.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        metadata["deletionRequested"] = True
        raw_data["metadata"] = metadata

        try:
            _write_atomic(path, yaml.safe_dump(raw_data, sort_keys=False), prefix=f".{key}.")
        except OSError as e:
            raise SpecStoreError(f"Failed to write manifest {path}: {e}") from e

        logger.info("Deletion requested", extra={"key": key, "path": str(path)})

    def update_status(self, key: str, status: NetworkStatus) -> None:
        """Persist ``status`` atomically (temp file + rename)."""
        path = self.status_path(key)
        content = yaml.safe_dump(status.to_record(), sort_keys=False)

        try:
            _write_atomic(path, content, prefix=f".{key}.")
        except OSError as e:
            raise SpecStoreError(f"Failed to write status {path}: {e}") from e

        logger.debug(
            "Persisted status",
            extra={"key": key, "state": status.state.value, "path": str(path)},
        )
