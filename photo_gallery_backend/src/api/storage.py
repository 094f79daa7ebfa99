import logging
import pathlib
import re
import time
from typing import BinaryIO, Optional, Protocol

logger = logging.getLogger(__name__)

IMAGES_URL_PREFIX = "/images"
BLOB_SUBDIR = "fulls"
CHUNK_SIZE = 1024 * 1024


class Upload(Protocol):
    filename: Optional[str]
    file: BinaryIO


# PUBLIC_INTERFACE
def resolve_url(filename: str, base_url: str = "") -> str:
    """Map a blob filename to its public URL, e.g. '/images/fulls/a.jpg'."""
    path = f"{IMAGES_URL_PREFIX}/{BLOB_SUBDIR}/{filename}"
    base = (base_url or "").rstrip("/")
    return f"{base}{path}" if base else path


def _safe_join(root: pathlib.Path, key: str) -> pathlib.Path:
    # Prevent path traversal: resolve and ensure it is within root.
    candidate = (root / key).resolve()
    if root not in candidate.parents:
        raise ValueError("Invalid storage key")
    return candidate


def _sanitize(original_name: str) -> str:
    # Browsers may send a full client path; keep the last component only.
    name = pathlib.PureWindowsPath(original_name).name
    name = pathlib.PurePosixPath(name).name
    return re.sub(r"\s+", "-", name) or "upload"


class BlobStore:
    """Local-disk blob store. Photo records only ever hold the returned filename."""

    def __init__(self, images_root: str) -> None:
        self.images_root = pathlib.Path(images_root).resolve()
        self.root = self.images_root / BLOB_SUBDIR

    def ensure_root(self) -> pathlib.Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    # PUBLIC_INTERFACE
    def save_upload(self, upload: Upload) -> str:
        """
        Save an uploaded file into the blob directory.

        Returns:
          the stored filename, "<epoch millis>-<client name, whitespace as '-'>"
        """
        root = self.ensure_root()
        filename = f"{int(time.time() * 1000)}-{_sanitize(upload.filename or '')}"
        target = _safe_join(root, filename)

        size = 0
        with target.open("wb") as f:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                f.write(chunk)
        logger.info(f"Stored upload {filename} ({size} bytes)")
        return filename

    # PUBLIC_INTERFACE
    def discard(self, filename: str) -> bool:
        """
        Best-effort removal of a blob that no photo references.

        Failures are logged and reported as False, never raised.
        """
        try:
            self.resolve_path(filename).unlink()
        except (OSError, ValueError) as exc:
            logger.warning(f"Could not discard blob {filename!r}: {exc}")
            return False
        return True

    # PUBLIC_INTERFACE
    def resolve_path(self, filename: str) -> pathlib.Path:
        """Resolve a blob filename to its absolute path inside the blob directory."""
        return _safe_join(self.root, filename)
