#!/usr/bin/env python3
# WebGL host
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
WebGL host (webgl-host)

Serves a prebuilt Unity WebGL build: wasm binary, data blob, loader and
framework scripts, the index.html shell and TemplateData/.  One process
covers every deployment flavour through config flags:

  cache.memory        — preload build files into RAM before accepting requests
  compression.enabled — gzip/brotli for compressible responses
  upload.enabled      — POST /admin/upload and GET /admin/files

Port: $PORT (default 3002)
"""

import asyncio
import logging
import resource
import sys
import time
from datetime import datetime, timezone

from aiohttp import web

from .lib.compression import compression_middleware
from .lib.config import Settings
from .lib.delivery import StaticDelivery
from .lib.headers import CROSS_ORIGIN_HEADERS
from .lib.memory_cache import MemoryCache
from .lib.uploads import UploadStore, UploadError, UploadTooLarge
from .lib.watchdog import notify_ready, watchdog_loop

logger = logging.getLogger("webgl-host")


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f} MB"


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------
class WebGLHost:
    """Owns the per-process state: settings, memory cache, upload store."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cache = MemoryCache(settings.root)
        self.delivery = StaticDelivery(settings, self.cache)
        self.uploads = UploadStore(settings.upload_dir, settings.max_upload_bytes)
        self.started_at = time.monotonic()
        self._watchdog_task: asyncio.Task | None = None

    async def start(self):
        s = self.settings
        if s.memory_cache:
            count = await self.cache.preload(s.preload)
            if s.preload and count == 0:
                logger.warning("Memory cache enabled but none of %d files could be loaded",
                               len(s.preload))
        if s.upload:
            self.uploads.ensure_directory()

        logger.info("Serving Unity WebGL build from %s", s.root)
        logger.info("Cache headers: %s", s.cache_mode.value)
        logger.info("In-memory cache: %s (%d files, %s)",
                    "ENABLED" if s.memory_cache else "DISABLED",
                    len(self.cache), _mb(self.cache.total_bytes))
        logger.info("Compression: %s", "gzip/brotli" if s.compression else "off")
        if s.upload:
            logger.info("Upload endpoint: /admin/upload -> %s", s.upload_dir)

        notify_ready(f"{len(self.cache)} files cached")
        self._watchdog_task = asyncio.create_task(watchdog_loop())

    async def stop(self):
        if self._watchdog_task:
            self._watchdog_task.cancel()
            self._watchdog_task = None
        logger.info("WebGL host stopped")

    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    def cache_status(self) -> dict:
        return {
            "initialized": self.cache.initialized,
            "files": [
                {"file": e.path, "size": _mb(e.size_bytes), "sizeBytes": e.size_bytes}
                for e in self.cache.entries()
            ],
            "totalSize": _mb(self.cache.total_bytes),
        }


HOST_KEY = web.AppKey("host", WebGLHost)


def _memory_stats() -> dict:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        "maxRss": usage.ru_maxrss * 1024,  # ru_maxrss is KiB on Linux
        "minorFaults": usage.ru_minflt,
        "majorFaults": usage.ru_majflt,
    }


# ---------------------------------------------------------------------------
# HTTP handlers
# ---------------------------------------------------------------------------
async def handle_health(request: web.Request) -> web.Response:
    """GET /health — liveness plus cache summary."""
    host = request.app[HOST_KEY]
    return web.json_response({
        "status": "healthy",
        "uptime": round(host.uptime(), 3),
        "memory": _memory_stats(),
        "cacheStatus": "initialized" if host.cache.initialized else "not-initialized",
        "cachedFiles": [e.path for e in host.cache.entries()],
        "cacheSize": _mb(host.cache.total_bytes),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def handle_cache_status(request: web.Request) -> web.Response:
    """GET /cache-status — cached files and their sizes."""
    return web.json_response(request.app[HOST_KEY].cache_status())


async def _part_chunks(part):
    while True:
        chunk = await part.read_chunk()
        if not chunk:
            return
        yield chunk


async def handle_upload(request: web.Request) -> web.Response:
    """POST /admin/upload — store the multipart field 'file' in the volume."""
    host = request.app[HOST_KEY]
    if not request.content_type.startswith("multipart/"):
        return web.json_response({"error": "No file uploaded"}, status=400)

    reader = await request.multipart()
    async for part in reader:
        if part.name != "file" or not getattr(part, "filename", None):
            continue
        try:
            saved = await host.uploads.save(part.filename, _part_chunks(part))
        except UploadTooLarge as e:
            logger.warning("Upload rejected: %s (%s)", part.filename, e)
            return web.json_response({"error": str(e)}, status=413)
        except UploadError as e:
            return web.json_response({"error": str(e)}, status=400)
        return web.json_response({"success": True, **saved})

    return web.json_response({"error": "No file uploaded"}, status=400)


async def handle_files(request: web.Request) -> web.Response:
    """GET /admin/files — files currently in the upload volume."""
    files = request.app[HOST_KEY].uploads.list_files()
    return web.json_response({"files": files})


async def handle_static(request: web.Request) -> web.StreamResponse:
    """GET /{path} — build files, index.html, or 404."""
    return await request.app[HOST_KEY].delivery.handle(request)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
@web.middleware
async def access_log_middleware(request, handler):
    start = time.monotonic()
    status = 500
    try:
        resp = await handler(request)
        status = resp.status
        return resp
    except web.HTTPException as ex:
        status = ex.status
        raise
    finally:
        duration = (time.monotonic() - start) * 1000
        logger.info("%s %s - %d - %.0fms", request.method, request.path_qs, status, duration)


def cors_middleware(allow_methods: str):
    @web.middleware
    async def middleware(request, handler):
        try:
            if request.method == "OPTIONS":
                resp = web.Response()
            else:
                resp = await handler(request)
        except web.HTTPException as ex:
            ex.headers.update(CROSS_ORIGIN_HEADERS)
            raise
        resp.headers.update(CROSS_ORIGIN_HEADERS)
        resp.headers["Access-Control-Allow-Methods"] = allow_methods
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return resp

    return middleware


@web.middleware
async def error_middleware(request, handler):
    """Turn unexpected faults into a bare 500; details go to the log only."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return web.Response(status=500, text="Internal server error")


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------
async def on_startup(app: web.Application):
    await app[HOST_KEY].start()


async def on_cleanup(app: web.Application):
    await app[HOST_KEY].stop()


def create_app(settings: Settings | None = None) -> web.Application:
    if settings is None:
        settings = Settings.from_config()

    middlewares = [
        access_log_middleware,
        cors_middleware("GET, POST, OPTIONS" if settings.upload else "GET, OPTIONS"),
        error_middleware,
    ]
    if settings.compression:
        middlewares.append(compression_middleware(settings.compression_threshold,
                                                  settings.compression_level))

    app = web.Application(middlewares=middlewares)
    app[HOST_KEY] = WebGLHost(settings)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/cache-status", handle_cache_status)
    if settings.upload:
        app.router.add_post("/admin/upload", handle_upload)
        app.router.add_get("/admin/files", handle_files)
    app.router.add_get("/{tail:.*}", handle_static)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        settings = Settings.from_config()
        app = create_app(settings)
        web.run_app(app, host="0.0.0.0", port=settings.port, access_log=None,
                    print=lambda msg: logger.info(msg))
    except OSError as e:
        logger.error("Could not start server: %s", e)
        sys.exit(1)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
