"""aiohttp application factory.

Wires a configured router into an aiohttp application:
- Structured logging from the logging section
- Prometheus metrics and their endpoint when metrics are enabled
- The routing middleware in front of the application's own handlers
"""

import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web

from switchyard.core.config import RouterConfig
from switchyard.core.logging import initialize_logging
from switchyard.core.metrics import initialize_metrics
from switchyard.core.router import Router
from switchyard.middleware import create_routing_middleware

logger = logging.getLogger(__name__)

ROUTER_KEY = web.AppKey("router", Router)


def create_app(
    config: RouterConfig, setup: Callable[[Router], Any] | None = None
) -> web.Application:
    """Create an aiohttp application routed by a router built from config.

    Args:
        config: Router configuration
        setup: Called with the router to register routes defined in code

    Returns:
        aiohttp Application; the router is stored under ROUTER_KEY
    """
    router_logger = initialize_logging(config.logging)
    metrics = initialize_metrics(config.metrics) if config.metrics.enabled else None

    router = Router.from_config(config, metrics=metrics, router_logger=router_logger)
    if setup is not None:
        setup(router)

    app = web.Application(
        middlewares=[
            create_routing_middleware(
                router,
                config.logging.correlation_id_header,
                router_logger,
                metrics=metrics,
                metrics_endpoint=config.metrics.endpoint,
            )
        ]
    )
    app[ROUTER_KEY] = router

    logger.info(
        f"Created router application in {config.environment} environment",
        extra={
            "environment": config.environment,
            "routes": len(router.routes),
            "strategy": router.strategy,
            "metrics": metrics is not None,
        },
    )
    return app
