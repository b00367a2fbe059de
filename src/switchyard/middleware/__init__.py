"""aiohttp integration for the router."""

from switchyard.middleware.routing import (
    ROUTE_RESULT_KEY,
    RoutingHandler,
    create_routing_middleware,
)

__all__ = [
    "ROUTE_RESULT_KEY",
    "RoutingHandler",
    "create_routing_middleware",
]
