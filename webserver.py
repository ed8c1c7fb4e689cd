"""Aiohttp web server showing a photo next to its segmentation overlay."""

import asyncio
import logging
import os
from io import BytesIO
from pathlib import Path

from aiohttp import web

from segoverlay.config import Config
from segoverlay.errors import SegmentationError
from segoverlay.logging_config import configure_logging
from segoverlay.pipeline.processor import ProcessingResult, SegmentationPipeline
from segoverlay.pipeline.runner import BackgroundRunner

logger = logging.getLogger(__name__)

# Configuration (can be overridden by environment variables)
HOST = os.getenv("WEB_HOST", "0.0.0.0")
PORT = int(os.getenv("WEB_PORT", "8080"))
STATIC_DIR = Path(Config.STATIC_DIR)

PIPELINES_KEY = web.AppKey("pipelines", dict)
RUNNERS_KEY = web.AppKey("runners", dict)


async def index_handler(request: web.Request) -> web.FileResponse:
    """Serve index.html for the root path."""
    return web.FileResponse(STATIC_DIR / "index.html")


def _get_runner(app: web.Application, mode: str) -> BackgroundRunner:
    runners = app[RUNNERS_KEY]
    if mode not in runners:
        pipeline = app[PIPELINES_KEY].get(mode) or SegmentationPipeline(mode=mode)
        # A single worker keeps one inference in flight per mode
        runners[mode] = BackgroundRunner(pipeline, max_workers=1)
    return runners[mode]


def _encode_png(result: ProcessingResult) -> bytes:
    buffer = BytesIO()
    result.overlay.to_pil("RGB").save(buffer, format="PNG")
    return buffer.getvalue()


async def segment_handler(request: web.Request) -> web.Response:
    """Render the overlay for an uploaded image and return it as PNG.

    Decoding, inference and encoding all run on worker threads.
    """
    if not request.content_type.startswith("multipart/"):
        return web.json_response({"error": "NoImageError", "message": "expected a multipart upload"}, status=400)

    data = None
    mode = Config.DEFAULT_MODE
    reader = await request.multipart()
    async for part in reader:
        if part.name == "image":
            data = bytes(await part.read())
        elif part.name == "mode":
            mode = (await part.text()).strip()

    if data is None:
        return web.json_response({"error": "NoImageError", "message": "missing 'image' field"}, status=400)
    if mode not in Config.MODES:
        return web.json_response({"error": "ValueError", "message": f"unknown mode '{mode}'"}, status=400)

    runner = _get_runner(request.app, mode)
    try:
        result = await asyncio.wrap_future(runner.submit(data))
    except SegmentationError as e:
        return web.json_response({"error": type(e).__name__, "message": str(e)}, status=422)

    body = await asyncio.get_running_loop().run_in_executor(None, _encode_png, result)
    return web.Response(
        body=body,
        content_type="image/png",
        headers={"X-Overlay-Mode": result.mode, "X-Overlay-Model": result.model_name},
    )


async def _shutdown_runners(app: web.Application) -> None:
    for runner in app[RUNNERS_KEY].values():
        runner.shutdown(wait=False)


def create_app(static_dir: Path = None, pipelines: dict = None) -> web.Application:
    """Create and configure the aiohttp web application.

    Args:
        static_dir: Optional path to static files directory. Defaults to ./static/
        pipelines: Optional mode -> SegmentationPipeline mapping, created on demand otherwise.
    """
    static = static_dir or STATIC_DIR
    app = web.Application()
    app[PIPELINES_KEY] = dict(pipelines or {})
    app[RUNNERS_KEY] = {}
    app.router.add_get("/", index_handler)
    app.router.add_post("/api/segment", segment_handler)
    app.router.add_static("/static/", static, name="static")
    app.on_cleanup.append(_shutdown_runners)
    return app


async def start_server(runner: web.AppRunner, host: str = None, port: int = None) -> None:
    """Start the web server asynchronously.

    Args:
        runner: The aiohttp AppRunner to use
        host: Host to bind to. Defaults to WEB_HOST env var or 0.0.0.0
        port: Port to bind to. Defaults to WEB_PORT env var or 8080
    """
    await runner.setup()
    site = web.TCPSite(runner, host or HOST, port or PORT)
    await site.start()
    logger.info("Web server running at http://%s:%s", host or HOST, port or PORT)


def run_standalone() -> None:
    """Run the web server in standalone mode (blocking)."""
    configure_logging()
    if not STATIC_DIR.exists():
        STATIC_DIR.mkdir(parents=True)
        logger.info("Created static directory: %s", STATIC_DIR)

    app = create_app()
    logger.info("Starting web server at http://%s:%s", HOST, PORT)
    web.run_app(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run_standalone()
