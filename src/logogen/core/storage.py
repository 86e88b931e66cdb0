"""Artifact storage helpers.

Generated images live on local disk in a flat layout:

- processed artifacts in the ``generated`` directory
- unmodified downloads in ``generated/original``
- a scratch ``temp`` directory

Artifacts are written once and never modified.  The file system is the only
owner of artifact bytes; there is no metadata file to reconcile, so listing
simply scans the processed directory.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from stat import S_ISREG

from pydantic import BaseModel

from logogen.core.config import DirectoryConfig

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")
MAX_SLUG_LENGTH = 50

_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9\s]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_and_build_filename(
    prompt: str,
    kind: str,
    timestamp: int,
    is_original: bool = False,
) -> str:
    """Build a deterministic artifact filename from a prompt.

    Everything other than ASCII letters, digits and whitespace is removed,
    whitespace runs become a single underscore, and the slug is cut to 50
    characters.

    Two calls with the same prompt, kind and millisecond timestamp produce
    the same name; the second write overwrites the first.

    Args:
        prompt: The user's original prompt.
        kind: Artifact kind (``"logo"`` or ``"icon"``).
        timestamp: Milliseconds since the epoch.
        is_original: Append the ``_original`` suffix.

    Returns:
        A filename such as ``logo_Modern_Tech_Co_1700000000000.png``.
    """
    slug = _DISALLOWED_CHARS.sub("", prompt)
    slug = _WHITESPACE_RUN.sub("_", slug)[:MAX_SLUG_LENGTH]
    suffix = "_original" if is_original else ""
    return f"{kind}_{slug}_{timestamp}{suffix}.png"


class ArtifactPaths(BaseModel):
    """Filesystem locations and public URL paths for one generation."""

    processed_path: Path
    original_path: Path
    public_processed_path: str
    public_original_path: str


class StoredArtifact(BaseModel):
    filename: str
    path: str
    size: int
    created: str
    modified: str


def _isoformat(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


class FileStore:
    """Directory management, writes and listings for generated artifacts."""

    def __init__(self, directories: DirectoryConfig) -> None:
        self._dirs = directories

    @property
    def directories(self) -> DirectoryConfig:
        return self._dirs

    def ensure_directories(self) -> None:
        """Create the processed, original and scratch directories.

        Safe to call repeatedly.  Permission and disk errors are logged and
        re-raised since the service cannot store anything without them.
        """
        try:
            for directory in (
                self._dirs.generated,
                self._dirs.generated_original,
                self._dirs.temp,
            ):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Error creating artifact directories")
            raise
        logger.info("Artifact directories ready under %s", self._dirs.generated)

    def artifact_paths(self, filename: str, original_filename: str) -> ArtifactPaths:
        prefix = self._dirs.public_prefix
        return ArtifactPaths(
            processed_path=self._dirs.generated / filename,
            original_path=self._dirs.generated_original / original_filename,
            public_processed_path=f"{prefix}/{filename}",
            public_original_path=f"{prefix}/original/{original_filename}",
        )

    def persist(self, path: Path, data: bytes) -> None:
        """Write *data* to *path*, creating parent directories as needed.

        There is no atomic rename; a process killed mid-write can leave a
        truncated file behind.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Saved %d bytes to %s", len(data), path)

    def list_artifacts(self) -> list[StoredArtifact]:
        """Return processed artifacts, newest first.

        Only regular files with an image extension directly inside the
        processed directory are listed; the ``original`` subdirectory is
        skipped.  Creation time is the platform birth time where available
        and the modification time otherwise.
        """
        generated = self._dirs.generated
        if not generated.is_dir():
            return []

        entries: list[tuple[float, StoredArtifact]] = []
        for path in generated.iterdir():
            if path.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            # Files may be removed by outside cleanup while we scan.
            try:
                stat = path.stat()
            except FileNotFoundError:
                logger.debug("Artifact vanished during listing: %s", path.name)
                continue
            if not S_ISREG(stat.st_mode):
                continue
            created = getattr(stat, "st_birthtime", stat.st_mtime)
            artifact = StoredArtifact(
                filename=path.name,
                path=f"{self._dirs.public_prefix}/{path.name}",
                size=stat.st_size,
                created=_isoformat(created),
                modified=_isoformat(stat.st_mtime),
            )
            entries.append((created, artifact))

        entries.sort(key=lambda item: (item[0], item[1].filename), reverse=True)
        return [artifact for _, artifact in entries]

    def check_directories(self) -> dict[str, bool]:
        return {
            "generatedExists": self._dirs.generated.is_dir(),
            "originalExists": self._dirs.generated_original.is_dir(),
            "tempExists": self._dirs.temp.is_dir(),
        }
