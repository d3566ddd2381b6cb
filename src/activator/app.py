"""Composition root: wires settings, store, lookup and handlers into an aiohttp application."""

from __future__ import annotations

import functools
import logging
from typing import Optional

from aiohttp import web

from activator.config.settings import ActivatorSettings, get_activator_settings
from activator.handler import ContextHandler, RoutingHandler
from activator.metadata import MetadataLookup
from activator.net import SessionBinder, TargetRegistry, new_policy
from activator.store import AffinityStore

logger = logging.getLogger(__name__)

TARGET_REGISTRY_KEY = web.AppKey("target_registry", TargetRegistry)


def create_app(
    lookup: MetadataLookup,
    *,
    store: Optional[AffinityStore] = None,
    settings: Optional[ActivatorSettings] = None,
    registry: Optional[TargetRegistry] = None,
    routing_handler: Optional[RoutingHandler] = None,
) -> web.Application:
    """
    Build the activator application.

    The store, when given, is opened on startup and closed on cleanup; its
    lifecycle belongs to the application.
    """
    if settings is None:
        settings = get_activator_settings()
    if registry is None:
        registry = TargetRegistry(
            functools.partial(new_policy, settings.lb_policy, SessionBinder(store)),
            capacity=settings.container_concurrency,
        )
    if routing_handler is None:
        routing_handler = RoutingHandler(registry, acquire_timeout=settings.acquire_timeout)

    context_handler = ContextHandler(
        lookup,
        store,
        cluster_domain=settings.cluster_domain,
        max_cas_attempts=settings.max_cas_attempts,
    )

    app = web.Application(middlewares=[context_handler.middleware()])
    app[TARGET_REGISTRY_KEY] = registry
    app.router.add_route("*", "/{tail:.*}", routing_handler.handle)

    if store is not None:

        async def _open_store(_: web.Application) -> None:
            await store.open()

        async def _close_store(_: web.Application) -> None:
            await store.close()

        app.on_startup.append(_open_store)
        app.on_cleanup.append(_close_store)

    async def _close_routing(_: web.Application) -> None:
        await routing_handler.close()

    app.on_cleanup.append(_close_routing)
    logger.info("Activator configured with %s load balancing", settings.lb_policy)
    return app


__all__ = ["TARGET_REGISTRY_KEY", "create_app"]
