"""aiohttp routing middleware.

This module adapts the router to aiohttp applications:
- Matching each request's path and method
- Dispatching to callable route targets
- Host, port and scheme constraints of matched routes
- Router, group and route middleware stacks around targets
- JSON error responses for 404 and 405
- Correlation ID propagation
- Prometheus metrics endpoint
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from aiohttp import web

from switchyard.core.logging import RouterLogger
from switchyard.core.metrics import RouterMetrics
from switchyard.core.router import RouteResult, Router

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Request key holding the RouteResult of a matched request
ROUTE_RESULT_KEY = "route_result"


class RoutingHandler:
    """Matches aiohttp requests against a router.

    Coordinates:
    - Correlation ID creation
    - Route matching
    - Request constraint checks
    - Middleware stack and target dispatch
    - Error responses (404, 405)
    - Metrics export
    """

    def __init__(
        self,
        router: Router,
        correlation_id_header: str = "X-Request-ID",
        router_logger: RouterLogger | None = None,
        metrics: RouterMetrics | None = None,
        metrics_endpoint: str | None = None,
    ):
        """Initialize the routing handler.

        Args:
            router: Router instance
            correlation_id_header: Header carrying the correlation ID
            router_logger: Structured event logger holding the correlation ID
            metrics: Metrics collector exported at metrics_endpoint
            metrics_endpoint: Path serving the Prometheus metrics
        """
        self.router = router
        self.correlation_id_header = correlation_id_header
        self.router_logger = router_logger
        self.metrics = metrics
        self.metrics_endpoint = metrics_endpoint

    def _correlation_id(self, request: web.Request) -> str:
        correlation_id = request.headers.get(self.correlation_id_header)
        if self.router_logger:
            return self.router_logger.set_correlation_id(correlation_id)
        return correlation_id or RouterLogger.generate_correlation_id()

    async def handle_request(self, request: web.Request, downstream: Handler) -> web.StreamResponse:
        """Route a request.

        Args:
            request: aiohttp Request object
            downstream: Next handler, used when the route target is not callable

        Returns:
            Response of the route target, or a JSON error response
        """
        if self.metrics is not None and request.path == self.metrics_endpoint:
            return self._metrics_response(self.metrics)

        correlation_id = self._correlation_id(request)
        headers = {self.correlation_id_header: correlation_id}

        try:
            result = self.router.match(request.rel_url.raw_path, request.method)

            if result.is_method_failure:
                return self._error_response(
                    405,
                    "method_not_allowed",
                    f"Method {request.method} not allowed for this path",
                    correlation_id,
                    {**headers, "Allow": ", ".join(result.allowed_methods)},
                )

            rejected = result.is_success and not self._accepts(request, result)
            if rejected:
                logger.debug(
                    f"Route {result.matched_route_name} rejects request origin",
                    extra={
                        "correlation_id": correlation_id,
                        "scheme": request.scheme,
                        "host": request.url.host,
                        "port": request.url.port,
                    },
                )

            if result.is_failure or rejected:
                return self._error_response(
                    404,
                    "not_found",
                    "The requested resource was not found",
                    correlation_id,
                    headers,
                )

            request[ROUTE_RESULT_KEY] = result

            logger.debug(
                f"Dispatching request: {request.method} {request.path}",
                extra={
                    "correlation_id": correlation_id,
                    "route": result.matched_route_name,
                    "attributes": result.attributes,
                },
            )

            try:
                response = await self._dispatch(request, result, downstream)
            except web.HTTPException as e:
                e.headers[self.correlation_id_header] = correlation_id
                raise

            if self.correlation_id_header not in response.headers:
                response.headers[self.correlation_id_header] = correlation_id
            return response
        finally:
            if self.router_logger:
                self.router_logger.clear_correlation_id()

    @staticmethod
    def _accepts(request: web.Request, result: RouteResult) -> bool:
        if result.route is None:
            return True
        return result.route.accepts(request.scheme, request.url.host, request.url.port)

    async def _dispatch(
        self, request: web.Request, result: RouteResult, downstream: Handler
    ) -> web.StreamResponse:
        route = result.route
        target = route.target if route is not None else None

        async def endpoint(request: web.Request) -> web.StreamResponse:
            if not callable(target):
                return await downstream(request)
            response = target(request)
            if inspect.isawaitable(response):
                response = await response
            return response

        stack = self.router.middleware_stack
        if route is not None:
            stack += route.middleware_stack()

        handler: Handler = endpoint
        for middleware in reversed(stack):
            handler = _chain(middleware, handler)
        return await handler(request)

    @staticmethod
    def _metrics_response(metrics: RouterMetrics) -> web.Response:
        """Metrics in Prometheus text format."""
        metrics_text = metrics.export_metrics().decode("utf-8")
        return web.Response(text=metrics_text, content_type="text/plain; version=0.0.4")

    @staticmethod
    def _error_response(
        status: int,
        error: str,
        message: str,
        correlation_id: str,
        headers: dict[str, str],
    ) -> web.Response:
        return web.json_response(
            {
                "error": error,
                "message": message,
                "correlation_id": correlation_id,
                "timestamp": datetime.now(UTC).isoformat(),
            },
            status=status,
            headers=headers,
        )


def _chain(middleware: Callable[..., Awaitable[web.StreamResponse]], handler: Handler) -> Handler:
    async def call(request: web.Request) -> web.StreamResponse:
        return await middleware(request, handler)

    return call


def create_routing_middleware(
    router: Router,
    correlation_id_header: str = "X-Request-ID",
    router_logger: RouterLogger | None = None,
    metrics: RouterMetrics | None = None,
    metrics_endpoint: str | None = None,
) -> Callable[[web.Request, Handler], Awaitable[web.StreamResponse]]:
    """Create an aiohttp middleware that routes requests through a router.

    Args:
        router: Router instance
        correlation_id_header: Header carrying the correlation ID
        router_logger: Structured event logger
        metrics: Metrics collector, exported at metrics_endpoint when set
        metrics_endpoint: Path serving the Prometheus metrics

    Returns:
        aiohttp middleware function
    """
    routing = RoutingHandler(
        router, correlation_id_header, router_logger, metrics, metrics_endpoint
    )

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        return await routing.handle_request(request, handler)

    return middleware
