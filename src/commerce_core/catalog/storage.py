"""
Catalog artifact storage.

Artifacts are written to a temporary file in the output directory and renamed
into place, so a download never sees a partial file. Names follow
``catalog-<epoch millis>-<random token>.<ext>``; only names of that shape are
served back.
"""

import logging
import os
import re
import secrets
from pathlib import Path

from commerce_core.shared.clock import Clock
from commerce_core.shared.exceptions import ArtifactNotFoundError

logger = logging.getLogger(__name__)

ARTIFACT_NAME_PATTERN = re.compile(r"^catalog-\d+-[0-9a-f]{8}\.[a-z0-9]{1,8}$")

MEDIA_TYPES = {
    "html": "text/html",
    "pdf": "application/pdf",
}


class ArtifactStore:
    """Directory of generated catalog files."""

    def __init__(self, directory: str | Path, clock: Clock | None = None):
        self.directory = Path(directory)
        self.clock = clock or Clock()

    def new_file_name(self, extension: str) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        return f"catalog-{millis}-{secrets.token_hex(4)}.{extension.lower()}"

    def save(self, content: bytes, extension: str) -> str:
        """
        Write an artifact and return its file name.

        Args:
            content: Artifact bytes
            extension: File extension without the dot

        Returns:
            The generated file name
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        file_name = self.new_file_name(extension)
        target = self.directory / file_name
        temp_path = self.directory / f".{file_name}.tmp"

        try:
            temp_path.write_bytes(content)
            os.replace(temp_path, target)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

        logger.info(f"Saved catalog artifact {file_name} ({len(content)} bytes)")
        return file_name

    def resolve(self, file_name: str) -> Path:
        """
        Path of a stored artifact.

        Raises:
            ArtifactNotFoundError: If the name is not an artifact name or the
                file does not exist
        """
        if not ARTIFACT_NAME_PATTERN.match(file_name):
            raise ArtifactNotFoundError("Catalog file not found", file_name=file_name)

        path = self.directory / file_name
        if not path.is_file():
            raise ArtifactNotFoundError("Catalog file not found", file_name=file_name)
        return path

    @staticmethod
    def media_type_for(file_name: str) -> str:
        extension = file_name.rsplit(".", 1)[-1].lower()
        return MEDIA_TYPES.get(extension, "application/octet-stream")
