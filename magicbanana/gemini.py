import base64
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any

import httpx
from pydantic import BaseModel

from magicbanana import transport
from magicbanana.costs import CostBreakdown, compute_cost
from magicbanana.errors import provider_error

logger = logging.getLogger(__name__)


class InlineImage(BaseModel):
    data: str
    mime_type: str


class GenerateResult(BaseModel):
    text: str
    image: InlineImage | None
    cost: CostBreakdown | None


def build_request_body(prompt: str, images: list[tuple[bytes, str]]) -> dict[str, Any]:
    parts: list[dict[str, Any]] = [{"text": prompt}]
    for content, mime_type in images:
        parts.append(
            {
                "inlineData": {
                    "mimeType": mime_type,
                    "data": base64.b64encode(content).decode("utf-8"),
                }
            }
        )
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
    }


def aggregate_chunks(chunks: Iterable[dict[str, Any]]) -> GenerateResult:
    """Fold streamed generateContent chunks into one result.

    Only the first candidate is considered. Chunks without content parts are
    skipped entirely, usage metadata included.
    """
    text = ""
    image: InlineImage | None = None
    usage: dict[str, Any] | None = None

    for chunk in chunks:
        candidates = chunk.get("candidates") or []
        if not candidates:
            continue
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts:
            continue

        if chunk.get("usageMetadata"):
            usage = chunk["usageMetadata"]

        inline_data = parts[0].get("inlineData") or parts[0].get("inline_data")
        if inline_data:
            image = InlineImage(
                data=inline_data.get("data") or "",
                mime_type=inline_data.get("mimeType") or inline_data.get("mime_type") or "image/png",
            )
        else:
            text += "".join(part.get("text", "") for part in parts if isinstance(part.get("text"), str))

    return GenerateResult(text=text, image=image, cost=compute_cost(usage, has_image=image is not None))


async def _iter_sse_json(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            yield json.loads(data)
        except ValueError:
            logger.warning("Skipping undecodable stream chunk: %.200s", data)


async def generate_image(
    api_key: str,
    api_base: str,
    model: str,
    prompt: str,
    images: list[tuple[bytes, str]],
) -> GenerateResult:
    url = f"{api_base}/models/{model}:streamGenerateContent"
    body = build_request_body(prompt, images)
    logger.info("Calling %s with %d image(s)", model, len(images))

    async with transport.open_client(timeout=120.0) as client:
        async with client.stream(
            "POST",
            url,
            params={"alt": "sse"},
            headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
            json=body,
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise provider_error("Gemini", response)
            chunks = [chunk async for chunk in _iter_sse_json(response)]

    result = aggregate_chunks(chunks)
    logger.info(
        "Gemini returned %d chunk(s), image=%s, cost=%s",
        len(chunks),
        result.image is not None,
        result.cost.formatted_cost if result.cost else "n/a",
    )
    return result
