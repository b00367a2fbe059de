"""Shared fixtures for integration tests."""

from collections.abc import AsyncGenerator

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from switchyard.core.config import LoggingConfig, MetricsConfig, RouteConfig, RouterConfig
from switchyard.core.logging import RouterLogger
from switchyard.core.metrics import RouterMetrics
from switchyard.core.router import Router
from switchyard.middleware import ROUTE_RESULT_KEY, create_routing_middleware


async def show_user(request: web.Request) -> web.Response:
    """Echo the matched route and attributes."""
    result = request[ROUTE_RESULT_KEY]
    return web.json_response({"route": result.matched_route_name, "attributes": result.attributes})


def archive(request: web.Request) -> web.Response:
    """Synchronous target."""
    result = request[ROUTE_RESULT_KEY]
    return web.json_response({"archive": result.attributes})


async def fallback_handler(request: web.Request) -> web.Response:
    """Downstream aiohttp handler for routes with non-callable targets."""
    result = request[ROUTE_RESULT_KEY]
    return web.json_response({"downstream": result.route.target})


async def conflict(request: web.Request) -> web.Response:
    raise web.HTTPConflict()


@pytest.fixture
def router_config() -> RouterConfig:
    """Create router configuration for integration tests."""
    return RouterConfig(
        tokens={"id": "\\d+"},
        routes=[
            RouteConfig(path="/health", target="health-check", name="health"),
        ],
        logging=LoggingConfig(level="DEBUG", format="json"),
    )


@pytest.fixture
def router_logger(router_config: RouterConfig) -> RouterLogger:
    return RouterLogger(router_config.logging)


@pytest.fixture
def router_metrics() -> RouterMetrics:
    return RouterMetrics(MetricsConfig())


@pytest.fixture
def router(
    router_config: RouterConfig, router_metrics: RouterMetrics, router_logger: RouterLogger
) -> Router:
    """Create a router with callable and plain targets."""
    router = Router.from_config(router_config, metrics=router_metrics, router_logger=router_logger)
    router.get("/users/{id}", show_user, "users.show")
    router.put("/users/{id}", show_user, "users.update")
    router.get("/archive/{year:\\d{4}}[/{month:\\d{2}};/{day:\\d{2}}]", archive, "archive")
    router.get("/files/{name}", show_user, "files")
    router.get("/conflict", conflict, "conflict")
    return router


@pytest.fixture
def routed_app(router: Router, router_logger: RouterLogger) -> web.Application:
    app = web.Application(
        middlewares=[create_routing_middleware(router, router_logger=router_logger)]
    )
    app.router.add_route("*", "/{tail:.*}", fallback_handler)
    return app


@pytest.fixture
async def client(routed_app: web.Application) -> AsyncGenerator[TestClient, None]:
    """Create a test client for the routed application."""
    client = TestClient(TestServer(routed_app))
    await client.start_server()
    yield client
    await client.close()
