import hashlib
import json
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)


@contextmanager
def scratch_dir(prefix: str = "peakgate-", root: Optional[str] = None) -> Iterator[Path]:
    """Yield a freshly created, uniquely named directory and always remove it.

    ``root`` defaults to the platform temp directory.  Removal failures are
    logged and never replace the result or error of the ``with`` body.
    """
    if root:
        os.makedirs(root, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("could not remove scratch dir %s: %s", path, e)


def resolve_within(root, path) -> Path:
    """Resolve ``path`` against ``root`` and refuse anything that escapes it."""
    base = Path(root).resolve()
    p = Path(path)
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if p != base and base not in p.parents:
        raise ValueError(f"path escapes work dir: {path}")
    return p


def sha256_and_size(path) -> Tuple[str, int]:
    """Return ``(sha256, size)`` for ``path``."""
    h = hashlib.sha256()
    size = 0
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            size += len(chunk)
            h.update(chunk)
    return h.hexdigest(), size


def add_output(manifest: dict, key: str, filename_path) -> Tuple[str, int]:
    """Register ``filename_path`` under ``key`` in ``manifest``.

    Returns the calculated ``(sha256, size)`` so callers can reuse the
    checksum without hashing twice.
    """
    sha, size = sha256_and_size(filename_path)
    manifest[key] = {
        "filename": Path(filename_path).name,
        "sha256": sha,
        "bytes": size,
    }
    return sha, size


def write_json_atomic(path, obj: Dict[str, Any]) -> None:
    tmp = str(path) + ".tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(obj, fh, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


def write_manifest(root: Path, manifest: dict) -> Path:
    path = Path(root) / "manifest.json"
    write_json_atomic(path, manifest)
    return path
