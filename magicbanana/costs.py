from typing import Any

from pydantic import BaseModel

# USD, Gemini 2.5 Flash Image pricing
INPUT_TEXT_PRICE_PER_MILLION = 0.30
OUTPUT_PRICE_PER_MILLION = 2.50
IMAGE_PRICE = 0.04


class CostBreakdown(BaseModel):
    input_tokens: int
    output_tokens: int
    input_image_tokens: int
    generated_images: int
    total_tokens: int
    input_cost: float
    output_cost: float
    image_cost: float
    total_cost: float
    formatted_cost: str


def _image_prompt_tokens(usage: dict[str, Any]) -> int:
    for detail in usage.get("promptTokensDetails") or []:
        if detail.get("modality") == "IMAGE":
            return int(detail.get("tokenCount") or 0)
    return 0


def compute_cost(usage: dict[str, Any] | None, has_image: bool) -> CostBreakdown | None:
    """Estimate what a generate call cost from the usage metadata Gemini reported.

    Image tokens in the prompt are split out of the input count; generated
    images are billed at a flat rate instead of per token.
    """
    if not usage:
        return None

    prompt_tokens = int(usage.get("promptTokenCount") or 0)
    output_tokens = int(usage.get("candidatesTokenCount") or 0)
    input_image_tokens = _image_prompt_tokens(usage)
    input_tokens = prompt_tokens - input_image_tokens

    input_cost = input_tokens / 1_000_000 * INPUT_TEXT_PRICE_PER_MILLION
    output_cost = output_tokens / 1_000_000 * OUTPUT_PRICE_PER_MILLION
    generated_images = 1 if has_image else 0
    image_cost = generated_images * IMAGE_PRICE
    total_cost = input_cost + output_cost + image_cost

    return CostBreakdown(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_image_tokens=input_image_tokens,
        generated_images=generated_images,
        total_tokens=int(usage.get("totalTokenCount") or (prompt_tokens + output_tokens)),
        input_cost=input_cost,
        output_cost=output_cost,
        image_cost=image_cost,
        total_cost=total_cost,
        formatted_cost=f"${total_cost:.4f}",
    )
