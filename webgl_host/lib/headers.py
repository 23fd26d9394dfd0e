# WebGL host
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Response header policy per asset class and cache mode.

One CacheMode is picked per deployment:

  immutable   — versioned build files are cached by the browser for a year
  revalidate  — everything is revalidated on each load
  no-store    — build files are never stored by the browser; the server's
                memory cache is what keeps them fast

HTML is never immutable in any mode: the shell page references the
versioned build files and must always be fresh.

Usage:
    from .headers import CacheMode, resolve_headers

    headers = resolve_headers(classify(path), CacheMode.IMMUTABLE)
"""

from enum import Enum
from types import MappingProxyType

from .assets import AssetClass


class CacheMode(Enum):
    IMMUTABLE = "immutable"
    REVALIDATE = "revalidate"
    NO_STORE = "no-store"

    @classmethod
    def parse(cls, value) -> "CacheMode":
        """Accept a CacheMode or its config name ("immutable", "no_store", ...)."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower().replace("_", "-")
        for mode in cls:
            if mode.value == name:
                return mode
        raise ValueError(f"unknown cache mode: {value!r}")


# Required on every response so the Unity runtime can use SharedArrayBuffer
CROSS_ORIGIN_HEADERS = MappingProxyType({
    "Access-Control-Allow-Origin": "*",
    "Cross-Origin-Resource-Policy": "cross-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Embedder-Policy": "require-corp",
})

IMMUTABLE = "public, max-age=31536000, immutable"
REVALIDATE = "no-cache, must-revalidate"
NO_STORE = "no-store, no-cache, must-revalidate"
ONE_DAY = "public, max-age=86400"

CONTENT_TYPES = {
    AssetClass.WASM: "application/wasm",
    AssetClass.DATA_BLOB: "application/octet-stream",
    AssetClass.SCRIPT_LOADER: "application/javascript",
    AssetClass.SCRIPT: "application/javascript",
    AssetClass.STYLESHEET: "text/css",
    AssetClass.MARKUP: "text/html; charset=utf-8",
}

_NOSNIFF = {"X-Content-Type-Options": "nosniff"}
_NO_STORE_EXTRA = {"Pragma": "no-cache"}


class CachePolicy:
    """Fixed header set for one asset class under one cache mode."""

    __slots__ = ("content_type", "cache_control", "extra_headers")

    def __init__(self, content_type: str | None, cache_control: str, extra_headers=None):
        self.content_type = content_type
        self.cache_control = cache_control
        self.extra_headers = MappingProxyType(dict(extra_headers or {}))

    def headers(self) -> dict:
        result = {}
        if self.content_type:
            result["Content-Type"] = self.content_type
        result["Cache-Control"] = self.cache_control
        result.update(self.extra_headers)
        return result

    def __repr__(self):
        return (f"CachePolicy(content_type={self.content_type!r}, "
                f"cache_control={self.cache_control!r}, extra={dict(self.extra_headers)!r})")


DEFAULT_POLICY = CachePolicy(None, "public, max-age=0")


def _policy(asset_class: AssetClass, cache_control: str, extra=None) -> CachePolicy:
    headers = dict(extra or {})
    if asset_class in (AssetClass.WASM, AssetClass.DATA_BLOB):
        headers.update(_NOSNIFF)
    return CachePolicy(CONTENT_TYPES.get(asset_class), cache_control, headers)


def _build_policies() -> dict:
    binary = (AssetClass.WASM, AssetClass.DATA_BLOB)
    scripts = (AssetClass.SCRIPT_LOADER, AssetClass.SCRIPT)
    static = (AssetClass.STYLESHEET, AssetClass.IMAGE)

    immutable = {c: _policy(c, IMMUTABLE) for c in binary + scripts + static}
    immutable[AssetClass.MARKUP] = _policy(AssetClass.MARKUP, REVALIDATE)

    revalidate = {c: _policy(c, REVALIDATE) for c in binary + scripts + static}
    revalidate[AssetClass.MARKUP] = _policy(AssetClass.MARKUP, REVALIDATE)

    no_store = {c: _policy(c, NO_STORE, {**_NO_STORE_EXTRA, "Expires": "0"}) for c in binary}
    no_store.update({c: _policy(c, NO_STORE, _NO_STORE_EXTRA) for c in scripts})
    no_store.update({c: _policy(c, ONE_DAY) for c in static})
    no_store[AssetClass.MARKUP] = _policy(AssetClass.MARKUP, REVALIDATE)

    return {
        CacheMode.IMMUTABLE: MappingProxyType(immutable),
        CacheMode.REVALIDATE: MappingProxyType(revalidate),
        CacheMode.NO_STORE: MappingProxyType(no_store),
    }


POLICIES = MappingProxyType(_build_policies())


def policy_for(asset_class: AssetClass, mode: CacheMode) -> CachePolicy:
    return POLICIES[mode].get(asset_class, DEFAULT_POLICY)


def resolve_headers(asset_class: AssetClass, mode: CacheMode) -> dict:
    """Return the full response header set for *asset_class* under *mode*."""
    headers = policy_for(asset_class, mode).headers()
    headers.update(CROSS_ORIGIN_HEADERS)
    return headers
