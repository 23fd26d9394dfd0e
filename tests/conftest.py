import pytest

from webgl_host.lib.config import Settings
from webgl_host.server import create_app

WASM = b"\x00asm\x01\x00\x00\x00" + bytes(range(256)) * 16
DATA = bytes(reversed(range(256))) * 32
FRAMEWORK_JS = b"var unityFramework = function () { return 42; };\n" * 64
LOADER_JS = b"function createUnityInstance(canvas, config) { return config; }\n" * 64
APP_JS = b"console.log('hello from the template');\n" * 64
STYLE_CSS = b"body { margin: 0; background: #231F20; }\n" * 64
INDEX_HTML = b"<!DOCTYPE html><html><head><title>Unity WebGL</title></head><body></body></html>"


@pytest.fixture
def build_root(tmp_path):
    """A tiny fake Unity build laid out the way the Unity exporter writes it."""
    root = tmp_path / "site"
    build = root / "Build"
    template = root / "TemplateData"
    build.mkdir(parents=True)
    template.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "app.js").write_bytes(APP_JS)
    (build / "x.wasm").write_bytes(WASM)
    (build / "x.data").write_bytes(DATA)
    (build / "x.framework.js").write_bytes(FRAMEWORK_JS)
    (build / "x.loader.js").write_bytes(LOADER_JS)
    (template / "style.css").write_bytes(STYLE_CSS)
    (template / "favicon.ico").write_bytes(b"\x00\x00\x01\x00")
    return root


@pytest.fixture
def make_settings(build_root, tmp_path):
    def factory(**overrides):
        options = {
            "compression": False,
            "upload_dir": str(tmp_path / "volume"),
        }
        options.update(overrides)
        return Settings(str(build_root), **options)

    return factory


@pytest.fixture
def make_client(aiohttp_client, make_settings):
    async def factory(client_kwargs=None, **overrides):
        app = create_app(make_settings(**overrides))
        return await aiohttp_client(app, **(client_kwargs or {}))

    return factory
