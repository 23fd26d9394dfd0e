"""
gzip / brotli response compression.

A response is compressed when its content type is compressible, it is at
least ``threshold`` bytes, the client accepts a coding we support, and the
client did not send ``X-No-Compression``.  The Content-Type header is never
changed, so the Unity loader still sees ``application/wasm`` for the wasm
binary.

  memory-cache bodies  — br or gzip, compressed once in the executor and
                         kept per (entry, coding); entries never change
  other buffered bodies — br or gzip, compressed in the executor
  streamed files       — gzip via aiohttp's chunked compressor

Every compressible response carries ``Vary: Accept-Encoding`` whether or
not this particular one was compressed.
"""

import asyncio
import gzip
import logging

import brotli
from aiohttp import web

from .delivery import CACHE_ENTRY_KEY, FILE_SIZE_KEY

log = logging.getLogger(__name__)

SUPPORTED = ("br", "gzip")
STREAMING = ("gzip",)

_COMPRESSIBLE_PREFIXES = ("text/",)
_COMPRESSIBLE_TYPES = {
    "application/javascript",
    "application/json",
    "application/wasm",
    "application/xml",
    "image/svg+xml",
}


def negotiate(accept_encoding: str | None, supported=SUPPORTED) -> str | None:
    """Pick the best coding from an Accept-Encoding header, in *supported* order."""
    if not accept_encoding:
        return None
    weights = {}
    for part in accept_encoding.split(","):
        coding, _, params = part.strip().partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        weights[coding] = q

    best = None
    best_q = 0.0
    for coding in supported:
        q = weights.get(coding, weights.get("*", 0.0))
        if q > best_q:
            best, best_q = coding, q
    return best


def is_compressible(content_type: str | None) -> bool:
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.startswith(_COMPRESSIBLE_PREFIXES) or mime in _COMPRESSIBLE_TYPES


def should_compress(body, content_type, threshold, *, opted_out=False, encoded=False) -> bool:
    if opted_out or encoded or body is None:
        return False
    if len(body) < threshold:
        return False
    return is_compressible(content_type)


def compress(body: bytes, coding: str, level: int = 6) -> bytes:
    if coding == "br":
        # brotli quality runs 0-11; scale the shared 1-9 level onto it
        return brotli.compress(body, quality=min(11, max(0, round(level * 11 / 9))))
    if coding == "gzip":
        return gzip.compress(body, compresslevel=level)
    raise ValueError(f"unsupported coding: {coding}")


def _add_vary(resp: web.StreamResponse):
    vary = resp.headers.get("Vary")
    if not vary:
        resp.headers["Vary"] = "Accept-Encoding"
    elif "accept-encoding" not in vary.lower():
        resp.headers["Vary"] = f"{vary}, Accept-Encoding"


def compression_middleware(threshold: int, level: int):
    """Build an aiohttp middleware that compresses eligible responses."""
    variants = {}

    async def _compress_off_loop(body, coding):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, compress, body, coding, level)

    async def _buffered(request, resp, coding):
        entry = resp.get(CACHE_ENTRY_KEY)
        if entry is not None:
            compressed = variants.get((entry, coding))
            if compressed is None:
                compressed = await _compress_off_loop(entry.data, coding)
                variants[(entry, coding)] = compressed
        else:
            compressed = await _compress_off_loop(bytes(resp.body), coding)
        log.debug("%s: %s %d -> %d bytes", request.path, coding, len(resp.body), len(compressed))
        resp.body = compressed
        resp.headers["Content-Encoding"] = coding

    @web.middleware
    async def middleware(request, handler):
        resp = await handler(request)
        if resp.status != 200 or not is_compressible(resp.headers.get("Content-Type")):
            return resp
        _add_vary(resp)

        opted_out = "X-No-Compression" in request.headers
        encoded = "Content-Encoding" in resp.headers

        if type(resp) is web.Response:
            body = resp.body
            if not isinstance(body, (bytes, bytearray)):
                return resp
            if not should_compress(body, resp.headers.get("Content-Type"), threshold,
                                   opted_out=opted_out, encoded=encoded):
                return resp
            coding = negotiate(request.headers.get("Accept-Encoding"))
            if coding is not None:
                await _buffered(request, resp, coding)
            return resp

        if isinstance(resp, web.FileResponse):
            size = resp.get(FILE_SIZE_KEY, 0)
            if opted_out or encoded or size < threshold:
                return resp
            if negotiate(request.headers.get("Accept-Encoding"), STREAMING) == "gzip":
                resp.enable_compression(web.ContentCoding.gzip)
        return resp

    return middleware
