# WebGL host
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Static delivery for a Unity WebGL build.

Each GET is answered by the first branch that matches:

  1. memory cache   — exact key hit, served from RAM with no-store headers
  2. filesystem     — build root, or the Build/ and TemplateData/ mounts
  3. "/"            — the index.html entry point
  4. not found      — 404 "File not found"

Headers come from the header policy for the file's asset class and the
server's configured cache mode.  Disk files are streamed with a
FileResponse, which also sends ETag / Last-Modified and answers
conditional requests with 304.
"""

import logging
import mimetypes
import os

from aiohttp import web

from .assets import classify
from .headers import CacheMode, resolve_headers

log = logging.getLogger(__name__)

SERVED_FROM_HEADER = "X-Served-From"

# Response keys read by the compression middleware
CACHE_ENTRY_KEY = "webgl_host.cache_entry"
FILE_SIZE_KEY = "webgl_host.file_size"


class StaticDelivery:
    """Serves build files according to *settings*; *cache* may be None."""

    def __init__(self, settings, cache=None):
        self.settings = settings
        self.cache = cache if settings.memory_cache else None

    async def handle(self, request: web.Request) -> web.StreamResponse:
        rel = request.path.lstrip("/")

        if self.cache is not None and self.cache.is_initialized():
            entry = self.cache.lookup(rel)
            if entry is not None:
                return self._from_memory(entry)

        file_path = self._resolve(rel)
        if file_path is not None:
            return self._from_disk(rel, file_path)

        if rel == "":
            index_path = self._within(self.settings.root, self.settings.index_file)
            if index_path is not None:
                return self._from_disk(self.settings.index_file, index_path)

        log.debug("Not found: %s", request.path)
        return web.Response(status=404, text="File not found")

    def _from_memory(self, entry) -> web.Response:
        headers = resolve_headers(classify(entry.path), CacheMode.NO_STORE)
        headers[SERVED_FROM_HEADER] = "memory-cache"
        _ensure_content_type(headers, entry.path)
        log.info("Serving %s from memory cache (%.2f MB)", entry.path,
                 entry.size_bytes / 1024 / 1024)
        resp = web.Response(body=entry.data, headers=headers)
        resp[CACHE_ENTRY_KEY] = entry
        return resp

    def _from_disk(self, rel: str, file_path: str) -> web.FileResponse:
        headers = resolve_headers(classify(rel), self.settings.cache_mode)
        _ensure_content_type(headers, rel)
        resp = _file_response(file_path, headers)
        resp[FILE_SIZE_KEY] = os.path.getsize(file_path)
        return resp

    def _resolve(self, rel: str) -> str | None:
        """Map a request path to a file on disk, or None."""
        if rel == "":
            return None
        path = self._within(self.settings.root, rel)
        if path is not None:
            return path

        prefix, _, rest = rel.partition("/")
        mount = self.settings.mounts.get(prefix)
        if mount and rest:
            return self._within(mount, rest)
        return None

    @staticmethod
    def _within(root: str, rel: str) -> str | None:
        """Join *rel* onto *root*, refusing anything that escapes it."""
        root = os.path.realpath(root)
        try:
            path = os.path.realpath(os.path.join(root, rel))
        except ValueError:  # embedded NUL
            return None
        if os.path.commonpath([root, path]) != root:
            return None
        if not os.path.isfile(path):
            return None
        return path


def _ensure_content_type(headers: dict, rel: str):
    if "Content-Type" in headers:
        return
    guessed, _ = mimetypes.guess_type(rel)
    headers["Content-Type"] = guessed or "application/octet-stream"


def _file_response(path: str, headers: dict) -> web.FileResponse:
    return web.FileResponse(path, headers=headers)
