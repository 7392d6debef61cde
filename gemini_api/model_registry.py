"""
Model configuration for the Gemini API.
Defines the available models and the region each one is served from.
"""

from typing import Dict, List, Optional

from .config import settings
from .errors import InvalidModelError
from .models import ModelInfo


# Available models and their locations
GEMINI_MODELS: Dict[str, str] = {
    "gemini-2.5-pro-preview-03-25": "global",
    "gemini-2.0-flash-thinking-exp-01-21": "global",
    "gemini-2.0-flash-001": "global",
    "gemini-2.0-flash-lite-001": "global",
    "gemini-1.5-flash-002": "asia-southeast1",
    "gemini-1.5-pro-002": "global",
}

FALLBACK_MODEL = "gemini-2.0-flash-001"


def is_valid_model(model: Optional[str]) -> bool:
    """Check if a model is supported."""
    return bool(model) and model in GEMINI_MODELS


def get_model_location(model: str) -> str:
    """
    Get the location for a given model.

    Raises:
        InvalidModelError: If the model is not supported
    """
    if not is_valid_model(model):
        raise InvalidModelError(
            f"Invalid model: {model}. Available models: {', '.join(GEMINI_MODELS)}"
        )
    return GEMINI_MODELS[model]


def get_all_model_configs() -> List[ModelInfo]:
    """Get all available models with their locations."""
    return [ModelInfo(model=model, location=location) for model, location in GEMINI_MODELS.items()]


def get_default_model_config() -> ModelInfo:
    """
    Get the default model configuration.

    Uses DEFAULT_GEMINI_MODEL when it names a supported model.
    """
    model = settings.default_gemini_model
    if not is_valid_model(model):
        model = FALLBACK_MODEL
    return ModelInfo(model=model, location=GEMINI_MODELS[model])


def resolve_model(model: Optional[str]) -> ModelInfo:
    """Resolve an optional model name to its configuration, defaulting when empty."""
    if not model:
        return get_default_model_config()
    return ModelInfo(model=model, location=get_model_location(model))
