"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from models.analysis import Language
from services.dependencies import ServiceContainer, get_services
from services.exceptions import SmartDiffError
from services.llm_service import LLMService

router = APIRouter()


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration"""

    provider: str | None = None
    gemini: dict | None = None
    openai: dict | None = None
    vllm: dict | None = None
    language: Language | None = None
    historyLimit: int | None = Field(default=None, ge=1)


class ConfigResponse(BaseModel):
    """Configuration response"""

    provider: str
    gemini: dict
    openai: dict
    vllm: dict
    language: str
    historyLimit: int


class ValidateResponse(BaseModel):
    """Validation response"""

    valid: bool
    message: str
    provider: str


def mask_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config(services: ServiceContainer = Depends(get_services)) -> ConfigResponse:
    """Get current configuration with API keys masked"""
    config = services.config_manager.get_config()

    providers = {}
    for name in ("gemini", "openai", "vllm"):
        block = config.get(name, {}).copy()
        block["apiKey"] = mask_key(block.get("apiKey", ""))
        providers[name] = block

    return ConfigResponse(
        provider=config.get("provider", "gemini"),
        language=config.get("language", "en"),
        historyLimit=config.get("historyLimit", 50),
        **providers,
    )


@router.put("")
async def update_config(
    request: ConfigUpdateRequest,
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Update only the provided fields"""
    config_manager = services.config_manager
    current_config = config_manager.get_config()

    if request.provider:
        current_config["provider"] = request.provider
    for name in ("gemini", "openai", "vllm"):
        block = getattr(request, name)
        if block:
            current_config[name] = {**current_config.get(name, {}), **block}
    if request.language:
        current_config["language"] = request.language.value
    if request.historyLimit:
        current_config["historyLimit"] = request.historyLimit
        services.history.capacity = request.historyLimit

    config_manager.save_config(current_config)

    return {"status": "success", "message": "Configuration updated"}


@router.post("/validate", response_model=ValidateResponse)
async def validate_config(services: ServiceContainer = Depends(get_services)) -> ValidateResponse:
    """Validate current configuration by testing the LLM connection"""
    config = services.config_manager.get_config()
    provider = config.get("provider", "gemini")

    try:
        response = await LLMService(config, max_retries=1).generate_response("Say 'OK' if you can hear me.")
    except SmartDiffError as e:
        return ValidateResponse(valid=False, message=f"Connection failed: {e}", provider=provider)

    if response.strip():
        return ValidateResponse(valid=True, message=f"Successfully connected to {provider}", provider=provider)
    return ValidateResponse(valid=False, message="Received empty response from LLM", provider=provider)
