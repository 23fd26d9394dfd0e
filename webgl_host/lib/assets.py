"""
Asset classification for Unity WebGL build files.

Every request path maps to exactly one AssetClass by looking at its suffix.
Unity names its build outputs ``<name>.framework.js`` and ``<name>.loader.js``
next to ordinary scripts, so the rules are checked longest-suffix first;
otherwise the plain ``.js`` rule would swallow them.
"""

from enum import Enum


class AssetClass(Enum):
    WASM = "wasm"
    DATA_BLOB = "data"
    SCRIPT_LOADER = "script-loader"
    SCRIPT = "script"
    STYLESHEET = "stylesheet"
    MARKUP = "markup"
    IMAGE = "image"
    OTHER = "other"


SUFFIX_RULES = tuple(sorted(
    [
        (".wasm", AssetClass.WASM),
        (".data", AssetClass.DATA_BLOB),
        (".framework.js", AssetClass.SCRIPT_LOADER),
        (".loader.js", AssetClass.SCRIPT_LOADER),
        (".js", AssetClass.SCRIPT),
        (".mjs", AssetClass.SCRIPT),
        (".css", AssetClass.STYLESHEET),
        (".html", AssetClass.MARKUP),
        (".htm", AssetClass.MARKUP),
        (".png", AssetClass.IMAGE),
        (".jpg", AssetClass.IMAGE),
        (".jpeg", AssetClass.IMAGE),
        (".gif", AssetClass.IMAGE),
        (".ico", AssetClass.IMAGE),
        (".svg", AssetClass.IMAGE),
        (".webp", AssetClass.IMAGE),
    ],
    key=lambda rule: len(rule[0]),
    reverse=True,
))


def classify(path: str) -> AssetClass:
    """Return the AssetClass for *path*; never raises."""
    lowered = path.lower()
    for suffix, asset_class in SUFFIX_RULES:
        if lowered.endswith(suffix):
            return asset_class
    return AssetClass.OTHER
