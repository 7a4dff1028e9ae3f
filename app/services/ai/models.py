"""
Model catalogue and alias resolution for generation requests.
"""

from loguru import logger

from app.core.config import settings

AVAILABLE_MODELS: dict[str, str] = {
    "GPT_4O_MINI": "openai/gpt-4o-mini",
    "GPT_OSS_20B": "openai/gpt-oss-20b",
    "GEMMA_3_4B_IT": "google/gemma-3-4b-it",
    "GEMMA_3_12B_IT": "google/gemma-3-12b-it",
    "GEMMA_3_27B_IT": "google/gemma-3-27b-it",
    "CLAUDE_3_OPUS": "anthropic/claude-3-opus:beta",
    "CLAUDE_3_SONNET": "anthropic/claude-3-sonnet",
    "CLAUDE_3_HAIKU": "anthropic/claude-3-haiku",
    "MISTRAL_SMALL_3_1_24B": "mistralai/mistral-small-3.1-24b-instruct",
}

# Quality tiers exposed to the apps
QUALITY_TIERS: dict[str, str] = {
    "otimo": AVAILABLE_MODELS["GPT_4O_MINI"],
    "bom": AVAILABLE_MODELS["GPT_OSS_20B"],
    "equilibrado": AVAILABLE_MODELS["GEMMA_3_27B_IT"],
    "baixo": AVAILABLE_MODELS["GEMMA_3_12B_IT"],
}

MODEL_ALIASES: dict[str, str] = {
    "chat": AVAILABLE_MODELS["GPT_OSS_20B"],
    "file": AVAILABLE_MODELS["GEMMA_3_12B_IT"],
    "summary_en": AVAILABLE_MODELS["GEMMA_3_12B_IT"],
    "code": AVAILABLE_MODELS["MISTRAL_SMALL_3_1_24B"],
}


def resolve_model(requested: str | None, default: str | None = None) -> str:
    """
    Map a quality tier, alias or model id to a concrete model id.

    Unknown names fall back to `default` (the configured text model).
    """
    default = default or settings.DEFAULT_TEXT_MODEL
    if not requested:
        return default

    name = requested.strip().lower()
    if name in QUALITY_TIERS:
        return QUALITY_TIERS[name]
    if name in MODEL_ALIASES:
        return MODEL_ALIASES[name]
    if name in AVAILABLE_MODELS.values():
        return name
    if "resumo" in name and "english" in name:
        return MODEL_ALIASES["summary_en"]

    logger.warning(f"Model '{requested}' not recognised, using default {default}")
    return default


def list_models() -> dict[str, list[dict[str, str]]]:
    families: dict[str, list[dict[str, str]]] = {}
    for key, model_id in AVAILABLE_MODELS.items():
        family = model_id.split("/", 1)[0]
        families.setdefault(family, []).append({"id": model_id, "name": key.replace("_", " ").title()})
    families["tiers"] = [{"id": model_id, "name": tier} for tier, model_id in QUALITY_TIERS.items()]
    families["aliases"] = [{"id": model_id, "name": alias} for alias, model_id in MODEL_ALIASES.items()]
    return families


def build_text_messages(prompt: str) -> list[dict]:
    return [{"role": "user", "content": prompt}]


def build_image_messages(prompt: str, image_url: str) -> list[dict]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        }
    ]
