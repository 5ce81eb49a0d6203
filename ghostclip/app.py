# app.py
import io
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from . import config
from .batch import ARCHIVE_NAME, BatchOrchestrator
from .embed import EmbedBridge
from .errors import ExportError, NothingToExportError, OversizeInputError
from .logger import get_logger
from .pipeline import CompositionOptions, CropMode, StrokeSpec, build_sticker
from .raster import decode_image, encode_image
from .router import ExecutionRouter
from .scenes import scene_preset
from .segmentation import Segmenter
from .studio import Studio

log = get_logger("app")
request_log = get_logger("requests")

MIME_TYPES = {"png": "image/png", "jpg": "image/jpeg", "webp": "image/webp"}


def create_app(segmenter=None, router=None, embed_origin: str = config.EMBED_ORIGIN) -> FastAPI:
    """Build the HTTP app around one shared segmenter and router."""
    segmenter = segmenter or Segmenter()
    router = router or ExecutionRouter()
    studio = Studio(segmenter, router)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        router.close()

    app = FastAPI(title="GhostClip Background Removal API", version="1.0.0", lifespan=lifespan)
    app.state.segmenter = segmenter
    app.state.router = router
    app.state.studio = studio
    app.state.embed = EmbedBridge(studio, origin=embed_origin)

    # CORS follows the embed origin; "*" is the open default
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[embed_origin or "*"], allow_credentials=embed_origin not in ("", "*"),
        allow_methods=["*"], allow_headers=["*"],
    )

    _register_routes(app)
    return app


# --- HELPERS ---

async def read_upload(upload: UploadFile, limit: int = config.MAX_UPLOAD_BYTES) -> bytes:
    data = await upload.read()
    if not data:
        raise ValueError("Empty image upload.")
    if len(data) > limit:
        raise OversizeInputError(len(data), limit)
    return data


def parse_output_format(output_format: Optional[str]) -> str:
    fmt = (output_format or "png").lower()
    fmt = "jpg" if fmt == "jpeg" else fmt
    if fmt not in ("png", "jpg"):
        raise ValueError("output_format must be 'png' or 'jpg'.")
    return fmt


async def build_options(
    bg: Optional[UploadFile],
    scene: Optional[str],
    solid: Optional[str],
    crop: Optional[str],
    stroke_width: Optional[int],
    stroke_color: Optional[str],
) -> CompositionOptions:
    """Background priority: uploaded scene > named scene > solid color > transparent."""
    scene_img = None
    if bg is not None:
        scene_img = decode_image(await read_upload(bg))
    elif scene:
        scene_img = scene_preset(scene)
    return CompositionOptions(
        background_color=solid or None,
        scene=scene_img,
        crop=CropMode.parse(crop),
        stroke=StrokeSpec(stroke_width or 0, stroke_color or config.DEFAULT_STROKE_COLOR),
    )


def image_response(data: bytes, fmt: str, stem: str, disposition: str = "inline") -> StreamingResponse:
    filename = f"{stem}.{fmt}"
    return StreamingResponse(io.BytesIO(data), media_type=MIME_TYPES[fmt],
                             headers={"Content-Disposition": f'{disposition}; filename="{filename}"'})


def error_response(exc: Exception) -> JSONResponse:
    if isinstance(exc, OversizeInputError):
        return JSONResponse(status_code=413, content={"error": str(exc)})
    if isinstance(exc, ExportError):
        log.error("Export failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    log.error("Request failed: %s", exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def render(app: FastAPI, options: CompositionOptions, matte, fmt: str) -> bytes:
    png = await app.state.router.build_final(options.request(matte))
    if fmt == "png":
        return png
    return encode_image(decode_image(png), fmt)


# --- ROUTES ---

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health():
        return {"status": "ok", "offloading": app.state.router.offloading}

    @app.post("/remove-bg")
    async def remove_bg(
        file: UploadFile = File(..., description="Foreground image (JPG/PNG)"),
        # Optional background image, cover-fitted behind the cutout
        bg: Optional[UploadFile] = File(None, description="Background scene image (JPG/PNG)"),
        scene: Optional[str] = Form(None, description="studio | nature | office | gradient"),
        # Alternatively a solid color, e.g. "#ffffff" or "255,255,255"
        solid: Optional[str] = Form(None, description="Solid color '#rrggbb' or 'R,G,B'"),
        crop: Optional[str] = Form("full", description="full | tight"),
        stroke_width: Optional[int] = Form(0, description="Outline width (px)"),
        stroke_color: Optional[str] = Form(None, description="Outline color '#rrggbb'"),
        output_format: Optional[str] = Form(None, description="'png' (default) or 'jpg'"),
    ):
        """Segment the upload, then crop/stroke/composite it. PNG keeps transparency."""
        try:
            data = await read_upload(file)
            options = await build_options(bg, scene, solid, crop, stroke_width, stroke_color)
            fmt = parse_output_format(output_format)
            matte = await app.state.segmenter.segment(data)
            return image_response(await render(app, options, matte, fmt), fmt, "ghostclip-cutout")
        except Exception as e:
            return error_response(e)

    @app.post("/compose")
    async def compose_matte(
        file: UploadFile = File(..., description="Already segmented RGBA matte (PNG)"),
        bg: Optional[UploadFile] = File(None, description="Background scene image (JPG/PNG)"),
        scene: Optional[str] = Form(None, description="studio | nature | office | gradient"),
        solid: Optional[str] = Form(None, description="Solid color '#rrggbb' or 'R,G,B'"),
        crop: Optional[str] = Form("full", description="full | tight"),
        stroke_width: Optional[int] = Form(0, description="Outline width (px)"),
        stroke_color: Optional[str] = Form(None, description="Outline color '#rrggbb'"),
        output_format: Optional[str] = Form(None, description="'png' (default) or 'jpg'"),
    ):
        """Apply the transforms to a matte without running segmentation."""
        try:
            data = await read_upload(file)
            options = await build_options(bg, scene, solid, crop, stroke_width, stroke_color)
            fmt = parse_output_format(output_format)
            return image_response(await render(app, options, data, fmt), fmt, "ghostclip-cutout")
        except Exception as e:
            return error_response(e)

    @app.post("/sticker")
    async def sticker(
        file: UploadFile = File(..., description="Foreground image (JPG/PNG)"),
        stroke_width: Optional[int] = Form(0, description="Outline width (px), 5 when 0"),
        stroke_color: Optional[str] = Form(None, description="Outline color '#rrggbb'"),
    ):
        """512x512 tight-cropped, outlined sticker; WebP when available."""
        try:
            data = await read_upload(file)
            stroke = StrokeSpec(stroke_width or 0, stroke_color or config.DEFAULT_STROKE_COLOR)
            matte = await app.state.segmenter.segment(data)
            out, ext = build_sticker(matte, stroke)
            return image_response(out, ext, "ghostclip-sticker", disposition="attachment")
        except Exception as e:
            return error_response(e)

    @app.post("/batch")
    async def batch(
        files: List[UploadFile] = File(..., description="Up to 50 images"),
        scene: Optional[str] = Form(None, description="studio | nature | office | gradient"),
        solid: Optional[str] = Form(None, description="Solid color '#rrggbb' or 'R,G,B'"),
        crop: Optional[str] = Form("full", description="full | tight"),
        stroke_width: Optional[int] = Form(0, description="Outline width (px)"),
        stroke_color: Optional[str] = Form(None, description="Outline color '#rrggbb'"),
    ):
        """Segment every file in turn and return the successful ones as a ZIP."""
        try:
            options = await build_options(None, scene, solid, crop, stroke_width, stroke_color)
            inputs = [(f.filename or f"image-{i + 1}", await f.read()) for i, f in enumerate(files)]
            orchestrator = BatchOrchestrator(app.state.segmenter, app.state.router)
            run = await orchestrator.run(inputs)
            archive = await orchestrator.export_archive(options)
        except NothingToExportError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        except Exception as e:
            return error_response(e)

        return StreamingResponse(io.BytesIO(archive), media_type="application/zip", headers={
            "Content-Disposition": f'attachment; filename="{ARCHIVE_NAME}"',
            "X-Batch-Done": str(len(run.done)),
            "X-Batch-Failed": str(len(run.failed)),
            "X-Batch-Discarded": str(run.discarded),
        })

    @app.post("/embed")
    async def embed(request: Request):
        """Host-page process command; only the configured origin is served."""
        bridge: EmbedBridge = app.state.embed
        origin = request.headers.get("origin")
        if not bridge.accepts(origin):
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Body must be JSON"})
        reply = await bridge.handle(message, origin)
        if reply is None:
            return JSONResponse(status_code=400, content={"error": "Unsupported message"})
        return reply

    @app.post("/api/log")
    async def client_log(request: Request, payload: Optional[Dict[str, Any]] = Body(None)):
        """Stateless client log sink."""
        payload = payload or {}
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": payload.get("level"),
            "message": payload.get("message"),
            "context": payload.get("context"),
            "ua": request.headers.get("user-agent", "unknown"),
        }
        line = json.dumps(entry, default=str)
        if entry["level"] == "error":
            request_log.error("[GhostClip] %s", line)
        else:
            request_log.info("[GhostClip] %s", line)
        return {"ok": True}


app = create_app()
