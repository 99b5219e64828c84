"""Viewer state for the canvas: pan/zoom/rotate/flip and colour adjustments.

The browser keeps the same numbers live while the user drags and pinches;
this module is what bakes them into a downloadable PNG.
"""

import io
import math

from PIL import Image, ImageOps
from pydantic import BaseModel, Field

MIN_SCALE = 0.1
MAX_SCALE = 10.0
ZOOM_STEP = 1.5
FIT_MARGIN = 0.9


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


def touch_distance(first: tuple[float, float], second: tuple[float, float]) -> float:
    return math.hypot(second[0] - first[0], second[1] - first[1])


class ImageAdjustments(BaseModel):
    brightness: float = Field(default=100, ge=0, le=200)
    contrast: float = Field(default=100, ge=0, le=200)
    saturation: float = Field(default=100, ge=0, le=200)
    hue: float = Field(default=0, ge=-180, le=180)

    def css_filter(self) -> str:
        return (
            f"brightness({self.brightness:g}%) contrast({self.contrast:g}%) "
            f"saturate({self.saturation:g}%) hue-rotate({self.hue:g}deg)"
        )

    def is_identity(self) -> bool:
        return self == ImageAdjustments()


class ViewTransform(BaseModel):
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0
    rotation: int = 0
    flip_x: bool = False
    flip_y: bool = False

    def zoom_in(self) -> "ViewTransform":
        return self.model_copy(update={"scale": min(self.scale * ZOOM_STEP, MAX_SCALE)})

    def zoom_out(self) -> "ViewTransform":
        return self.model_copy(update={"scale": max(self.scale / ZOOM_STEP, MIN_SCALE)})

    def set_zoom_percent(self, percent: float | None) -> "ViewTransform":
        return self.model_copy(update={"scale": clamp_scale((percent or 100) / 100)})

    def wheel(self, delta_y: float) -> "ViewTransform":
        factor = 0.9 if delta_y > 0 else 1.1
        return self.model_copy(update={"scale": clamp_scale(self.scale * factor)})

    def pinch(self, previous_distance: float, distance: float) -> "ViewTransform":
        if previous_distance <= 0:
            return self
        return self.model_copy(update={"scale": clamp_scale(self.scale * distance / previous_distance)})

    def pan(self, pointer: tuple[float, float], drag_origin: tuple[float, float]) -> "ViewTransform":
        return self.model_copy(
            update={"translate_x": pointer[0] - drag_origin[0], "translate_y": pointer[1] - drag_origin[1]}
        )

    def drag_origin(self, pointer: tuple[float, float]) -> tuple[float, float]:
        return pointer[0] - self.translate_x, pointer[1] - self.translate_y

    def fit_to_screen(
        self, image_size: tuple[float, float], container_size: tuple[float, float]
    ) -> "ViewTransform":
        image_w, image_h = image_size
        container_w, container_h = container_size
        if not image_w or not image_h or not container_w or not container_h:
            return self
        if image_w / image_h > container_w / container_h:
            scale = container_w * FIT_MARGIN / image_w
        else:
            scale = container_h * FIT_MARGIN / image_h
        return self.model_copy(update={"scale": max(scale, MIN_SCALE), "translate_x": 0.0, "translate_y": 0.0})

    def actual_size(self) -> "ViewTransform":
        return self.model_copy(update={"scale": 1.0, "translate_x": 0.0, "translate_y": 0.0})

    def rotate(self) -> "ViewTransform":
        return self.model_copy(update={"rotation": (self.rotation + 90) % 360})

    def flip_horizontal(self) -> "ViewTransform":
        return self.model_copy(update={"flip_x": not self.flip_x})

    def flip_vertical(self) -> "ViewTransform":
        return self.model_copy(update={"flip_y": not self.flip_y})

    def css_transform(self) -> str:
        return (
            f"translate({self.translate_x:g}px, {self.translate_y:g}px) "
            f"scale({self.scale:g}) "
            f"rotate({self.rotation}deg) "
            f"scaleX({-1 if self.flip_x else 1}) "
            f"scaleY({-1 if self.flip_y else 1})"
        )


def _clip8(value: float) -> int:
    return max(0, min(255, int(round(value))))


def _on_colour(image: Image.Image, apply) -> Image.Image:
    """Run ``apply`` on the RGB channels only; alpha is carried over untouched."""
    alpha = image.getchannel("A") if image.mode == "RGBA" else None
    result = apply(image.convert("RGB"))
    if alpha is not None:
        result.putalpha(alpha)
    return result


def _saturate_matrix(amount: float) -> tuple[float, ...]:
    s = amount
    return (
        0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s, 0,
        0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s, 0,
        0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s, 0,
    )


def _hue_rotate_matrix(degrees: float) -> tuple[float, ...]:
    cos = math.cos(math.radians(degrees))
    sin = math.sin(math.radians(degrees))
    return (
        0.213 + cos * 0.787 - sin * 0.213, 0.715 - cos * 0.715 - sin * 0.715, 0.072 - cos * 0.072 + sin * 0.928, 0,
        0.213 - cos * 0.213 + sin * 0.143, 0.715 + cos * 0.285 + sin * 0.140, 0.072 - cos * 0.072 - sin * 0.283, 0,
        0.213 - cos * 0.213 - sin * 0.787, 0.715 - cos * 0.715 + sin * 0.715, 0.072 + cos * 0.928 + sin * 0.072, 0,
    )


def apply_filters(image: Image.Image, adjustments: ImageAdjustments) -> Image.Image:
    """Apply the viewer's CSS filter chain with the Filter Effects formulas.

    brightness() scales linearly, contrast() pivots around mid grey, and
    saturate()/hue-rotate() use the W3C luminance-preserving colour matrices.
    """
    if adjustments.brightness != 100:
        factor = adjustments.brightness / 100
        image = _on_colour(image, lambda rgb: rgb.point(lambda v: _clip8(v * factor)))
    if adjustments.contrast != 100:
        factor = adjustments.contrast / 100
        image = _on_colour(image, lambda rgb: rgb.point(lambda v: _clip8((v - 128) * factor + 128)))
    if adjustments.saturation != 100:
        matrix = _saturate_matrix(adjustments.saturation / 100)
        image = _on_colour(image, lambda rgb: rgb.convert("RGB", matrix))
    if adjustments.hue:
        matrix = _hue_rotate_matrix(adjustments.hue)
        image = _on_colour(image, lambda rgb: rgb.convert("RGB", matrix))
    return image


def apply_view(image: Image.Image, transform: ViewTransform, adjustments: ImageAdjustments) -> Image.Image:
    """Apply flips, clockwise rotation and filters in the order CSS applies them.

    Pan and zoom only affect the viewport and are ignored.
    """
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() or image.mode == "P" else "RGB")

    if transform.flip_y:
        image = ImageOps.flip(image)
    if transform.flip_x:
        image = ImageOps.mirror(image)
    if transform.rotation % 360:
        image = image.rotate(-(transform.rotation % 360), expand=True)

    if adjustments.is_identity():
        return image
    return apply_filters(image, adjustments)


def render_png(content: bytes, transform: ViewTransform, adjustments: ImageAdjustments) -> bytes:
    with Image.open(io.BytesIO(content)) as source:
        source.load()
        rendered = apply_view(source, transform, adjustments)
    buffer = io.BytesIO()
    rendered.save(buffer, format="PNG")
    return buffer.getvalue()
