"""
Upload store for build files pushed through ``POST /admin/upload``.

Files land in a volume directory (``/data/unity-build-cache`` by default).
The body is streamed into a temporary file next to the target and only
renamed into place once it has been received in full, so a half-finished
upload never replaces a good file.
"""

import asyncio
import logging
import os
import tempfile

log = logging.getLogger(__name__)

# Bytes buffered before a write is handed to the executor
WRITE_BUFFER = 1024 * 1024


class UploadError(Exception):
    """Base class for rejected uploads."""


class InvalidUpload(UploadError):
    pass


class UploadTooLarge(UploadError):
    def __init__(self, limit: int):
        super().__init__(f"File exceeds the {limit // (1024 * 1024)} MB upload limit")
        self.limit = limit


def safe_filename(name: str | None) -> str:
    """Strip directories from a client-supplied filename."""
    name = os.path.basename((name or "").replace("\\", "/")).strip()
    if name in ("", ".", ".."):
        raise InvalidUpload("No file uploaded")
    return name


class UploadStore:
    def __init__(self, directory: str, max_bytes: int):
        self.directory = directory
        self.max_bytes = max_bytes

    def ensure_directory(self):
        os.makedirs(self.directory, exist_ok=True)

    async def save(self, filename: str, chunks) -> dict:
        """Write the async byte iterator *chunks* to *filename*.

        Raises UploadTooLarge as soon as more than ``max_bytes`` arrive.
        """
        name = safe_filename(filename)
        self.ensure_directory()
        target = os.path.join(self.directory, name)
        fd, tmp_path = tempfile.mkstemp(prefix=".upload-", dir=self.directory)
        loop = asyncio.get_running_loop()
        size = 0
        try:
            with os.fdopen(fd, "wb") as f:
                pending = bytearray()
                async for chunk in chunks:
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise UploadTooLarge(self.max_bytes)
                    pending += chunk
                    if len(pending) >= WRITE_BUFFER:
                        await loop.run_in_executor(None, f.write, bytes(pending))
                        pending.clear()
                if pending:
                    await loop.run_in_executor(None, f.write, bytes(pending))
            await loop.run_in_executor(None, os.replace, tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

        log.info("Uploaded: %s (%.2f MB)", name, size / 1024 / 1024)
        return {"filename": name, "size": size, "path": target}

    def list_files(self) -> list:
        """Return name and size of every file in the volume directory."""
        if not os.path.isdir(self.directory):
            return []
        files = []
        for name in sorted(os.listdir(self.directory)):
            if name.startswith(".upload-"):
                continue
            path = os.path.join(self.directory, name)
            if not os.path.isfile(path):
                continue
            size = os.path.getsize(path)
            files.append({
                "filename": name,
                "size": size,
                "sizeInMB": f"{size / 1024 / 1024:.2f}",
            })
        return files
