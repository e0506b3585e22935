"""Per-model token pricing used for cost records.

Prices are USD per one million tokens. Model names are matched exactly,
then by the longest known prefix (so dated snapshots like
``gpt-4o-2024-08-06`` price as ``gpt-4o``), then fall back to the default.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPricing:
    input_per_million: float
    output_per_million: float


MODEL_PRICING: dict[str, ModelPricing] = {
    "gpt-4o": ModelPricing(2.50, 10.00),
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4-turbo": ModelPricing(10.00, 30.00),
    "gpt-4": ModelPricing(30.00, 60.00),
    "gpt-3.5-turbo": ModelPricing(0.50, 1.50),
    "gpt-4.1": ModelPricing(2.00, 8.00),
    "gpt-4.1-mini": ModelPricing(0.40, 1.60),
    "gpt-4.1-nano": ModelPricing(0.10, 0.40),
    "o1": ModelPricing(15.00, 60.00),
    "o1-mini": ModelPricing(3.00, 12.00),
    "o3-mini": ModelPricing(1.10, 4.40),
    "claude-3-5-sonnet": ModelPricing(3.00, 15.00),
    "claude-3-5-haiku": ModelPricing(0.80, 4.00),
    "claude-3-opus": ModelPricing(15.00, 75.00),
    "claude-sonnet-4": ModelPricing(3.00, 15.00),
    "claude-haiku-4-5": ModelPricing(1.00, 5.00),
    "gemini-1.5-pro": ModelPricing(1.25, 5.00),
    "gemini-1.5-flash": ModelPricing(0.075, 0.30),
}

DEFAULT_PRICING = ModelPricing(2.50, 10.00)


def get_model_pricing(model: str) -> ModelPricing:
    """Look up pricing for ``model`` (provider prefixes like ``openai/`` are ignored)."""
    name = model.split("/", 1)[-1].lower()
    if name in MODEL_PRICING:
        return MODEL_PRICING[name]
    matches = [key for key in MODEL_PRICING if name.startswith(key)]
    if matches:
        return MODEL_PRICING[max(matches, key=len)]
    return DEFAULT_PRICING


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> tuple[float, float]:
    """Return ``(input_cost_usd, output_cost_usd)`` for one call."""
    pricing = get_model_pricing(model)
    return (
        prompt_tokens / 1_000_000 * pricing.input_per_million,
        completion_tokens / 1_000_000 * pricing.output_per_million,
    )
