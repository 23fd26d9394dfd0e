"""
Shared configuration loader for the WebGL host.

Loads a single JSON config file per deployment.  Search order:
  1. /etc/webgl-host/config.json   (deployed by the unit file)
  2. config.json                   (CWD — handy for local dev)
  3. ../../config/default.json     (repo fallback)

A handful of deployment values come from environment variables instead
(PORT, WEBGL_ROOT, UPLOAD_DIR) so the same config file works on any host.

Usage:
    from webgl_host.lib.config import cfg, Settings

    mode      = cfg("cache", "mode", default="no-store")
    preload   = cfg("cache", "preload", default=[])
    settings  = Settings.from_config()
"""

import json
import logging
import os

from .headers import CacheMode

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/webgl-host/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

DEFAULT_PORT = 3002
DEFAULT_UPLOAD_DIR = "/data/unity-build-cache"
DEFAULT_MAX_UPLOAD_BYTES = 200 * 1024 * 1024
DEFAULT_COMPRESSION_THRESHOLD = 1024
DEFAULT_COMPRESSION_LEVEL = 6


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    cache = config.get("cache") or {}
    try:
        CacheMode.parse(cache.get("mode", "no-store"))
    except ValueError as e:
        logger.warning("Config %s: %s", path, e)
    preload = cache.get("preload") or []
    if not isinstance(preload, list):
        logger.warning("Config %s: cache.preload should be a list of paths", path)
    elif cache.get("memory") and not preload:
        logger.warning("Config %s: cache.memory enabled but cache.preload is empty", path)
    comp = config.get("compression") or {}
    level = comp.get("level", DEFAULT_COMPRESSION_LEVEL)
    if not isinstance(level, int) or not 1 <= level <= 9:
        logger.warning("Config %s: compression.level %r outside 1-9", path, level)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _SEARCH_PATHS:
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("root")                         → config["root"]
    cfg("cache", "mode")                → config["cache"]["mode"]
    cfg("upload", "enabled", default=False)
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


class Settings:
    """Resolved server settings, built once at startup and passed around.

    Everything the request path needs lives here so handlers never read
    config or environment on their own.
    """

    def __init__(self, root, *, port=DEFAULT_PORT, cache_mode="no-store",
                 memory_cache=False, preload=(), compression=True,
                 compression_threshold=DEFAULT_COMPRESSION_THRESHOLD,
                 compression_level=DEFAULT_COMPRESSION_LEVEL,
                 upload=False, upload_dir=DEFAULT_UPLOAD_DIR,
                 max_upload_bytes=DEFAULT_MAX_UPLOAD_BYTES,
                 index_file="index.html", mounts=None):
        self.root = os.path.abspath(root)
        self.port = int(port)
        self.cache_mode = CacheMode.parse(cache_mode)
        self.memory_cache = bool(memory_cache)
        self.preload = tuple(preload)
        self.compression = bool(compression)
        self.compression_threshold = int(compression_threshold)
        self.compression_level = int(compression_level)
        self.upload = bool(upload)
        self.upload_dir = upload_dir
        self.max_upload_bytes = int(max_upload_bytes)
        self.index_file = index_file
        if mounts is None:
            mounts = {
                "Build": os.path.join(self.root, "Build"),
                "TemplateData": os.path.join(self.root, "TemplateData"),
            }
        self.mounts = {prefix: os.path.abspath(path) for prefix, path in mounts.items()}

    @classmethod
    def from_config(cls) -> "Settings":
        """Build settings from config.json plus environment overrides."""
        root = os.getenv("WEBGL_ROOT") or cfg("root", default=os.getcwd())
        mounts = cfg("mounts")
        if mounts:
            mounts = {prefix: os.path.join(root, path) for prefix, path in mounts.items()}
        return cls(
            root,
            port=os.getenv("PORT") or cfg("port", default=DEFAULT_PORT),
            cache_mode=cfg("cache", "mode", default="no-store"),
            memory_cache=cfg("cache", "memory", default=False),
            preload=cfg("cache", "preload", default=[]),
            compression=cfg("compression", "enabled", default=True),
            compression_threshold=cfg("compression", "threshold",
                                      default=DEFAULT_COMPRESSION_THRESHOLD),
            compression_level=cfg("compression", "level", default=DEFAULT_COMPRESSION_LEVEL),
            upload=cfg("upload", "enabled", default=False),
            upload_dir=os.getenv("UPLOAD_DIR") or cfg("upload", "directory",
                                                      default=DEFAULT_UPLOAD_DIR),
            max_upload_bytes=cfg("upload", "max_bytes", default=DEFAULT_MAX_UPLOAD_BYTES),
            index_file=cfg("index", default="index.html"),
            mounts=mounts,
        )
