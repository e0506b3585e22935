"""Generation provider abstraction."""

from promptcascade.llm.litellm import LiteLLMGenerationProvider
from promptcascade.llm.mock import MockGenerationProvider
from promptcascade.llm.pricing import estimate_cost, get_model_pricing
from promptcascade.llm.provider import ASK_QUESTION_TOOL, GenerationProvider

__all__ = [
    "ASK_QUESTION_TOOL",
    "GenerationProvider",
    "LiteLLMGenerationProvider",
    "MockGenerationProvider",
    "estimate_cost",
    "get_model_pricing",
]
