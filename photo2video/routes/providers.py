from fastapi import APIRouter, Depends

from photo2video.routes.videos import get_registry
from photo2video.services.providers import ProviderRegistry

router = APIRouter()


@router.get("")
async def list_providers(registry: ProviderRegistry = Depends(get_registry)):
    """Registered providers with their enablement, formats and presets"""
    return {
        "default": registry.default_provider_name(),
        "available": registry.has_available_provider(),
        "providers": registry.provider_status(),
    }
