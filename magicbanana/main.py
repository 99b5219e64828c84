import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from magicbanana import gemini, replicate
from magicbanana.config import get_settings
from magicbanana.errors import transport_error
from magicbanana.keys import (
    GEMINI,
    KEY_SPECS,
    REPLICATE,
    clear_key_cookie,
    resolve_api_key,
    store_key_cookie,
    validate_key,
)
from magicbanana.viewer import ImageAdjustments, ViewTransform, render_png

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


class SettingsRequest(BaseModel):
    gemini_api_key: str | None = None
    replicate_api_key: str | None = None


async def _read_images(images: list[UploadFile] | None) -> list[tuple[bytes, str]]:
    parsed: list[tuple[bytes, str]] = []
    for file in images or []:
        content = await file.read()
        if not content:
            continue
        parsed.append((content, file.content_type or "image/png"))
    return parsed


@asynccontextmanager
async def lifespan(_: FastAPI):
    load_dotenv()
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield


app = FastAPI(title="MagicBanana", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/settings")
async def get_key_settings(request: Request) -> dict[str, Any]:
    settings = get_settings()
    env_values = {
        GEMINI.provider: settings.gemini_api_key,
        REPLICATE.provider: settings.replicate_api_token,
    }
    return {
        "providers": {
            provider: {
                "label": spec.label,
                "has_server_key": bool(env_values[provider]),
                "has_custom_key": bool(request.cookies.get(spec.cookie_name)),
            }
            for provider, spec in KEY_SPECS.items()
        }
    }


@app.post("/api/settings")
async def save_key_settings(payload: SettingsRequest) -> JSONResponse:
    submitted = {
        GEMINI.provider: payload.gemini_api_key,
        REPLICATE.provider: payload.replicate_api_key,
    }
    values = {provider: value.strip() for provider, value in submitted.items() if value is not None}
    errors = {
        f"{provider}_api_key": message
        for provider, value in values.items()
        if (message := validate_key(KEY_SPECS[provider], value))
    }
    if errors:
        return JSONResponse(status_code=422, content={"detail": "Invalid API key", "errors": errors})

    secure = get_settings().cookie_secure
    response = JSONResponse(content={"saved": True})
    for provider, value in values.items():
        if value:
            store_key_cookie(response, KEY_SPECS[provider], value, secure)
        else:
            clear_key_cookie(response, KEY_SPECS[provider], secure)
    logger.info("Updated custom keys for %s", sorted(values) or "no provider")
    return response


@app.delete("/api/settings/{provider}")
async def clear_key_setting(provider: str) -> JSONResponse:
    spec = KEY_SPECS.get(provider)
    if spec is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    response = JSONResponse(content={"cleared": provider})
    clear_key_cookie(response, spec, get_settings().cookie_secure)
    return response


@app.post("/api/generate-image", response_model=gemini.GenerateResult)
async def generate_image(
    request: Request,
    prompt: str = Form(""),
    custom_api_key: str | None = Form(None),
    images: list[UploadFile] | None = File(default=None),
) -> gemini.GenerateResult:
    prompt = prompt.strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")

    settings = get_settings()
    api_key = resolve_api_key(GEMINI, request, custom_api_key, settings.gemini_api_key)
    parsed_images = await _read_images(images)

    try:
        return await gemini.generate_image(
            api_key=api_key,
            api_base=settings.gemini_api_base,
            model=settings.gemini_model,
            prompt=prompt,
            images=parsed_images,
        )
    except httpx.HTTPError as exc:
        raise transport_error("generate image", exc) from exc


@app.post("/api/enhance-image", response_model=replicate.EnhanceResult)
async def enhance_image(
    request: Request,
    image: UploadFile | None = File(default=None),
    fidelity: float = Form(0.7, ge=0, le=1),
    upscale: int = Form(2, ge=1, le=4),
    custom_api_key: str | None = Form(None),
) -> replicate.EnhanceResult:
    content = await image.read() if image is not None else b""
    if not content:
        raise HTTPException(status_code=400, detail="Image is required")

    settings = get_settings()
    api_key = resolve_api_key(REPLICATE, request, custom_api_key, settings.replicate_api_token)

    try:
        return await replicate.enhance_image(
            api_key=api_key,
            api_base=settings.replicate_api_base,
            version=settings.codeformer_version,
            content=content,
            mime_type=image.content_type or "image/png",
            fidelity=fidelity,
            upscale=upscale,
            poll_interval=settings.enhance_poll_interval,
            max_attempts=settings.enhance_max_attempts,
        )
    except httpx.HTTPError as exc:
        raise transport_error("enhance image", exc) from exc


@app.post("/api/render-image")
async def render_image(
    image: UploadFile = File(...),
    rotation: int = Form(0),
    flip_x: bool = Form(False),
    flip_y: bool = Form(False),
    brightness: float = Form(100, ge=0, le=200),
    contrast: float = Form(100, ge=0, le=200),
    saturation: float = Form(100, ge=0, le=200),
    hue: float = Form(0, ge=-180, le=180),
) -> Response:
    content = await image.read()
    if not content:
        raise HTTPException(status_code=400, detail="Image is required")

    transform = ViewTransform(rotation=rotation, flip_x=flip_x, flip_y=flip_y)
    adjustments = ImageAdjustments(brightness=brightness, contrast=contrast, saturation=saturation, hue=hue)
    try:
        png = render_png(content, transform, adjustments)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise HTTPException(status_code=400, detail="Image could not be decoded.") from exc
    return Response(content=png, media_type="image/png")


@app.get("/")
async def root() -> FileResponse:
    return FileResponse(STATIC_DIR / "index.html")


app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
