"""Run the activator HTTP server."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

from activator.app import create_app
from activator.config.settings import get_activator_settings, get_store_settings
from activator.logging_config import setup_logging
from activator.metadata import MetadataLookup, StaticMetadataLookup
from activator.net import TargetRegistry
from activator.store import AffinityStore

logger = logging.getLogger(__name__)

StartupHook = Callable[[web.Application], Awaitable[None]]


def build_app(
    lookup: Optional[MetadataLookup] = None,
    *,
    registry: Optional[TargetRegistry] = None,
    on_startup: Optional[StartupHook] = None,
) -> web.Application:
    """
    Assemble the served application from environment settings.

    ``lookup`` and ``registry`` are the control-plane views an external
    watcher keeps current. ``on_startup`` runs after the store opens and can
    start that watcher; the registry in use is ``app[TARGET_REGISTRY_KEY]``.
    Without a lookup every request answers 404.
    """
    settings = get_activator_settings()
    store = AffinityStore.from_settings(get_store_settings())
    app = create_app(lookup or StaticMetadataLookup(), store=store, settings=settings, registry=registry)
    if on_startup is not None:
        app.on_startup.append(on_startup)
    return app


def main(
    lookup: Optional[MetadataLookup] = None,
    *,
    registry: Optional[TargetRegistry] = None,
    on_startup: Optional[StartupHook] = None,
) -> None:
    """Start serving; see ``build_app`` for how a watcher feeds routing state."""
    setup_logging("activator")
    app = build_app(lookup, registry=registry, on_startup=on_startup)
    port = get_activator_settings().http_port
    if lookup is None:
        logger.warning("No metadata lookup supplied; all requests will be answered with 404")
    logger.info("Starting activator on port %s", port)
    web.run_app(app, port=port, print=None)


if __name__ == "__main__":
    main()
