"""
Dependency Injection Configuration

Application-wide services (settings, response cache, icon resolver, admission
gate) are registered once at startup in a service locator. Request-scoped
services are assembled per request from those singletons and the request's
database session through FastAPI dependencies.
"""
import logging
from typing import Annotated, Any, TypeVar

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from epg_server.config import CustomSettings
from epg_server.database import get_db
from epg_server.services.admission_service import AdmissionGate
from epg_server.services.channel_resolver import ChannelResolver
from epg_server.services.epg_query_service import EPGQueryService
from epg_server.services.response_cache import ResponseCache
from epg_server.services.response_synthesizer import ResponseSynthesizer
from epg_server.utils.channel_names import IconResolver


logger = logging.getLogger(__name__)

T = TypeVar('T')


class ServiceLocator:
    """
    Registry of application singletons keyed by service type.

    Keeps route handlers free of module-level globals so tests can register
    their own settings and cache.
    """

    def __init__(self):
        self._singletons: dict[type, Any] = {}

    def register_singleton(self, service_type: type[T], instance: T) -> None:
        """
        Register a singleton service instance.

        Args:
            service_type: The service interface/type
            instance: The concrete instance to use
        """
        self._singletons[service_type] = instance
        logger.debug(f"Registered singleton: {service_type.__name__}")

    def get(self, service_type: type[T]) -> T:
        """
        Get a registered service instance.

        Raises:
            KeyError: If service type is not registered
        """
        if service_type in self._singletons:
            return self._singletons[service_type]
        raise KeyError(f"Service {service_type.__name__} not registered in container")

    def reset(self) -> None:
        """Reset all registered services (mainly for testing)."""
        self._singletons = {}
        logger.debug("Service locator reset")


# Global service locator instance
_service_locator: ServiceLocator | None = None


def get_service_locator() -> ServiceLocator:
    """
    Get the global service locator instance.

    Returns:
        The global ServiceLocator
    """
    global _service_locator
    if _service_locator is None:
        _service_locator = ServiceLocator()
    return _service_locator


def reset_service_locator() -> None:
    """
    Reset the service locator (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _service_locator
    _service_locator = None


def configure_services(settings: CustomSettings, cache: ResponseCache) -> ServiceLocator:
    """Register the application singletons built from settings"""
    locator = get_service_locator()
    locator.register_singleton(CustomSettings, settings)
    locator.register_singleton(ResponseCache, cache)
    locator.register_singleton(IconResolver, IconResolver(settings.icon_dir, settings.server_url))
    locator.register_singleton(AdmissionGate, AdmissionGate(settings))
    return locator


def get_settings() -> CustomSettings:
    return get_service_locator().get(CustomSettings)


def get_response_cache() -> ResponseCache:
    return get_service_locator().get(ResponseCache)


def get_admission_gate() -> AdmissionGate:
    return get_service_locator().get(AdmissionGate)


def get_icon_resolver() -> IconResolver:
    return get_service_locator().get(IconResolver)


def get_query_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[CustomSettings, Depends(get_settings)],
    cache: Annotated[ResponseCache, Depends(get_response_cache)],
    icon_resolver: Annotated[IconResolver, Depends(get_icon_resolver)],
) -> EPGQueryService:
    """Request-scoped EPG query pipeline bound to the request's session"""
    return EPGQueryService(
        settings=settings,
        resolver=ChannelResolver(db),
        synthesizer=ResponseSynthesizer(settings, icon_resolver),
        cache=cache,
    )
