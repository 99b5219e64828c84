import asyncio
import base64
import logging
from typing import Any

import httpx
from fastapi import HTTPException
from pydantic import BaseModel

from magicbanana import transport
from magicbanana.gemini import InlineImage

logger = logging.getLogger(__name__)

RUNNING_STATUSES = {"starting", "processing"}


class EnhanceResult(BaseModel):
    success: bool
    enhanced_image: InlineImage
    original_image_url: str


def _auth_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Token {api_key}"}


def _output_url(output: Any) -> str | None:
    if isinstance(output, list):
        output = output[0] if output else None
    if isinstance(output, str) and output:
        return output
    return None


async def create_prediction(
    client: httpx.AsyncClient,
    api_key: str,
    api_base: str,
    version: str,
    data_uri: str,
    fidelity: float,
    upscale: int,
) -> dict[str, Any]:
    response = await client.post(
        f"{api_base}/predictions",
        headers={**_auth_headers(api_key), "Content-Type": "application/json"},
        json={
            "version": version,
            "input": {
                "image": data_uri,
                "upscale": upscale,
                "codeformer_fidelity": fidelity,
                "face_upsample": True,
                "background_enhance": False,
            },
        },
    )
    if response.status_code >= 400:
        logger.warning("Replicate rejected prediction (%s): %.300s", response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        detail = payload.get("detail") if isinstance(payload, dict) else None
        raise HTTPException(
            status_code=response.status_code,
            detail=f"Replicate API error: {detail or response.reason_phrase}",
        )
    try:
        return response.json()
    except ValueError as exc:
        logger.warning("Replicate answered prediction creation with a non-JSON body: %.300s", response.text)
        raise HTTPException(status_code=502, detail="Replicate API error: unexpected response body") from exc


async def wait_for_prediction(
    client: httpx.AsyncClient,
    api_key: str,
    api_base: str,
    prediction: dict[str, Any],
    poll_interval: float,
    max_attempts: int,
) -> dict[str, Any]:
    """Poll a prediction until it leaves the starting/processing states."""
    result = prediction
    attempts = 0
    while result.get("status") in RUNNING_STATUSES:
        if attempts >= max_attempts:
            logger.warning("Prediction %s still %s after %d polls", result.get("id"), result.get("status"), attempts)
            raise HTTPException(status_code=408, detail="Enhancement timed out. Please try again.")

        await asyncio.sleep(poll_interval)
        attempts += 1

        response = await client.get(
            f"{api_base}/predictions/{result.get('id')}",
            headers=_auth_headers(api_key),
        )
        if response.status_code >= 400:
            logger.warning("Polling prediction %s failed with %s", result.get("id"), response.status_code)
            raise HTTPException(status_code=502, detail="Failed to poll prediction status")
        try:
            result = response.json()
        except ValueError as exc:
            logger.warning("Polling prediction %s returned a non-JSON body", result.get("id"))
            raise HTTPException(status_code=502, detail="Failed to poll prediction status") from exc
        logger.debug("Prediction %s is %s (poll %d)", result.get("id"), result.get("status"), attempts)

    return result


async def enhance_image(
    api_key: str,
    api_base: str,
    version: str,
    content: bytes,
    mime_type: str,
    fidelity: float,
    upscale: int,
    poll_interval: float,
    max_attempts: int,
) -> EnhanceResult:
    data_uri = f"data:{mime_type};base64,{base64.b64encode(content).decode('utf-8')}"

    async with transport.open_client(timeout=60.0) as client:
        prediction = await create_prediction(client, api_key, api_base, version, data_uri, fidelity, upscale)
        logger.info("Created prediction %s (%s)", prediction.get("id"), prediction.get("status"))

        result = await wait_for_prediction(client, api_key, api_base, prediction, poll_interval, max_attempts)

        status = result.get("status")
        if status in {"failed", "canceled"}:
            logger.warning("Prediction %s %s: %s", result.get("id"), status, result.get("error"))
            raise HTTPException(status_code=502, detail=result.get("error") or "Enhancement failed")

        output_url = _output_url(result.get("output")) if status == "succeeded" else None
        if not output_url:
            raise HTTPException(status_code=502, detail="Enhancement completed but no output was generated")

        image_response = await client.get(output_url)
        if image_response.status_code >= 400:
            logger.warning("Downloading %s failed with %s", output_url, image_response.status_code)
            raise HTTPException(status_code=502, detail="Failed to fetch enhanced image")

    mime = (image_response.headers.get("content-type") or "").split(";")[0].strip()
    if not mime.startswith("image/"):
        mime = "image/png"

    return EnhanceResult(
        success=True,
        enhanced_image=InlineImage(
            data=base64.b64encode(image_response.content).decode("utf-8"),
            mime_type=mime,
        ),
        original_image_url=output_url,
    )
