import logging

import httpx
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def provider_error(provider_name: str, response: httpx.Response) -> HTTPException:
    logger.warning("%s returned %s: %.300s", provider_name, response.status_code, response.text)
    try:
        payload = response.json()
    except ValueError:
        return HTTPException(
            status_code=502,
            detail=f"{provider_name} returned an unexpected error ({response.status_code}).",
        )

    error_obj = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error_obj, dict):
        message = error_obj.get("message", "")
        status = str(error_obj.get("status", ""))
        if "SAFETY" in status.upper() or "safety" in message.lower() or "blocked" in message.lower():
            return HTTPException(
                status_code=422,
                detail=f"{provider_name}: Your prompt was blocked by the safety filter. Try rephrasing your prompt.",
            )
        if message:
            return HTTPException(status_code=502, detail=f"{provider_name}: {message}")

    return HTTPException(
        status_code=502,
        detail=f"{provider_name} error ({response.status_code}). Please try again.",
    )


def transport_error(action: str, exc: httpx.HTTPError) -> HTTPException:
    logger.error("Transport failure while trying to %s: %r", action, exc)
    return HTTPException(status_code=502, detail=f"Failed to {action}")
