from dataclasses import dataclass

from fastapi import HTTPException, Request, Response

COOKIE_MAX_AGE = 90 * 24 * 60 * 60


@dataclass(frozen=True)
class KeySpec:
    provider: str
    label: str
    cookie_name: str
    env_name: str
    prefix: str
    min_length: int


GEMINI = KeySpec(
    provider="gemini",
    label="Gemini",
    cookie_name="gemini_api_key",
    env_name="GEMINI_API_KEY",
    prefix="AIza",
    min_length=30,
)
REPLICATE = KeySpec(
    provider="replicate",
    label="Replicate",
    cookie_name="replicate_api_key",
    env_name="REPLICATE_API_TOKEN",
    prefix="r8_",
    min_length=40,
)

KEY_SPECS: dict[str, KeySpec] = {spec.provider: spec for spec in (GEMINI, REPLICATE)}


def validate_key(spec: KeySpec, value: str) -> str | None:
    """Return an error message for a user-supplied key, or None when acceptable.

    An empty value is acceptable and means the server default is used.
    """
    value = value.strip()
    if not value:
        return None
    if not value.startswith(spec.prefix):
        return f'{spec.label} API key should start with "{spec.prefix}"'
    if len(value) < spec.min_length:
        return "API key appears to be too short"
    return None


def resolve_api_key(spec: KeySpec, request: Request, custom_api_key: str | None, env_value: str | None) -> str:
    if custom_api_key and custom_api_key.strip():
        return custom_api_key.strip()
    cookie_value = (request.cookies.get(spec.cookie_name) or "").strip()
    if cookie_value:
        return cookie_value
    if env_value and env_value.strip():
        return env_value.strip()
    raise HTTPException(
        status_code=400,
        detail=f"No API key available. Please set {spec.env_name} or provide a custom key.",
    )


def store_key_cookie(response: Response, spec: KeySpec, value: str, secure: bool) -> None:
    response.set_cookie(
        key=spec.cookie_name,
        value=value,
        max_age=COOKIE_MAX_AGE,
        path="/",
        secure=secure,
        httponly=True,
        samesite="strict",
    )


def clear_key_cookie(response: Response, spec: KeySpec, secure: bool) -> None:
    response.delete_cookie(key=spec.cookie_name, path="/", secure=secure, httponly=True, samesite="strict")
