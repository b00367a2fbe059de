"""Route registry and request dispatch.

This module ties the routing engine together:
- Route registration with duplicate detection and default tokens
- Lazy compilation of dispatch data, optionally through a cache
- Matching into RouteResult values
- URL generation with query strings
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError

from switchyard.core.cache import DEFAULT_CACHE_KEY, RouteCache, create_cache
from switchyard.core.collector import DEFAULT_CHUNK_SIZE, RegexCollector
from switchyard.core.config import RouterConfig
from switchyard.core.dispatch import DispatchData
from switchyard.core.duplicates import DuplicateRouteDetector
from switchyard.core.exceptions import RouteNotFoundError, SwitchyardError
from switchyard.core.generator import UrlGenerator
from switchyard.core.group import MiddlewareStackMixin, RouteCollectionMixin, RouteGroup
from switchyard.core.logging import RouterLogger
from switchyard.core.matcher import Matcher, MatchResult
from switchyard.core.metrics import RouterMetrics
from switchyard.core.route import Route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteResult:
    """Match result together with the matched route record."""

    match: MatchResult
    route: Route | None = None

    @property
    def is_success(self) -> bool:
        return self.match.is_found

    @property
    def is_failure(self) -> bool:
        return not self.match.is_found

    @property
    def is_method_failure(self) -> bool:
        return self.match.is_method_not_allowed

    @property
    def matched_route_name(self) -> str | None:
        return self.match.route_name

    @property
    def attributes(self) -> dict[str, str]:
        """Copy of the matched attribute values."""
        return dict(self.match.attributes)

    @property
    def allowed_methods(self) -> tuple[str, ...]:
        return self.match.allowed_methods


class Router(MiddlewareStackMixin, RouteCollectionMixin):
    """Registers routes, matches requests and generates URLs.

    Example::

        router = Router()
        router.get("/blog/{id:[0-9]+}/edit", edit_post, "blog.edit")
        result = router.match("/blog/42/edit", "GET")
        result.attributes  # {"id": "42"}
        router.generate_uri("blog.edit", {"id": 42})  # "/blog/42/edit"
    """

    def __init__(
        self,
        strategy: str = "mark",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cache: RouteCache | None = None,
        cache_key: str = DEFAULT_CACHE_KEY,
        tokens: Mapping[str, str] | None = None,
        metrics: RouterMetrics | None = None,
        router_logger: RouterLogger | None = None,
    ):
        """Initialize the router.

        Args:
            strategy: Dispatch strategy ("mark" or "named")
            chunk_size: Maximum routes per compiled chunk
            cache: Compiled dispatch data cache; read on the first compile, and
                overwritten when routes were added since the last compile or load
            cache_key: Key of the dispatch data in the cache
            tokens: Default attribute constraints for every route
            metrics: Metrics collector
            router_logger: Structured event logger
        """
        self.strategy = strategy
        self.chunk_size = chunk_size
        self.cache = cache
        self.cache_key = cache_key
        self.metrics = metrics
        self.router_logger = router_logger

        self._tokens: dict[str, str] = dict(tokens or {})
        self._routes: dict[str, Route] = {}
        self._detector = DuplicateRouteDetector()
        self._generator = UrlGenerator(self._routes)
        self._matcher: Matcher | None = None
        self._middlewares = []
        self._lock = threading.Lock()
        # Set once dispatch data was compiled or loaded; a route added after
        # that makes the cached data stale until the next compile writes it
        self._data_loaded = False
        self._cache_stale = False

    @classmethod
    def from_config(
        cls,
        config: RouterConfig,
        metrics: RouterMetrics | None = None,
        router_logger: RouterLogger | None = None,
    ) -> "Router":
        """Build a router and register the configured routes.

        Args:
            config: Router configuration
            metrics: Metrics collector
            router_logger: Structured event logger

        Returns:
            Configured Router instance
        """
        router = cls(
            strategy=config.strategy,
            chunk_size=config.chunk_size,
            cache=create_cache(config.cache),
            cache_key=config.cache.key,
            tokens=config.tokens,
            metrics=metrics,
            router_logger=router_logger,
        )
        for route_config in config.routes:
            router.add_route(
                Route(
                    path=route_config.path,
                    target=route_config.target,
                    name=route_config.name or "",
                    methods=route_config.methods,
                    tokens=route_config.tokens,
                    host=route_config.host,
                    port=route_config.port,
                    schemes=route_config.schemes,
                )
            )
        return router

    @property
    def routes(self) -> dict[str, Route]:
        """Registered routes keyed by name, in registration order."""
        return dict(self._routes)

    @property
    def tokens(self) -> dict[str, str]:
        return dict(self._tokens)

    def set_tokens(self, tokens: Mapping[str, str]) -> "Router":
        """Add default attribute constraints; new values replace existing ones.

        Defaults apply to routes registered afterwards.
        """
        self._tokens = {**self._tokens, **tokens}
        return self

    def route(
        self,
        path: str,
        target: Any,
        name: str | None = None,
        methods: str | Iterable[str] | None = None,
        **options: Any,
    ) -> Route:
        return self.add_route(Route(path, target, name or "", methods, **options))

    def add_route(self, route: Route) -> Route:
        """Register a route record.

        Args:
            route: Route to register

        Returns:
            The stored route, with default tokens merged in

        Raises:
            DuplicateRouteError: If the route collides with a registered one
        """
        self._detector.check_and_record(route)
        if self._tokens:
            route = route.with_tokens(self._tokens)

        with self._lock:
            self._routes[route.name] = route
            self._matcher = None
            if self._data_loaded:
                self._cache_stale = True

        if self.metrics:
            self.metrics.update_routes(len(self._routes))

        logger.debug(
            f"Registered route {route.name}",
            extra={"route": route.name, "path": route.path, "methods": route.sorted_methods()},
        )
        return route

    def get_route(self, name: str) -> Route | None:
        return self._routes.get(name)

    def group(
        self, prefix: str, callback: Callable[[RouteGroup], Any], name_prefix: str = ""
    ) -> RouteGroup:
        """Register routes sharing a path prefix through a callback."""
        return RouteGroup(prefix, callback, self, name_prefix)()

    def crud(self, prefix_path: str, target: Any, prefix_name: str) -> RouteGroup:
        """Register the CRUD routes of a resource under a path prefix."""
        return self.group(prefix_path, lambda group: group.crud(target, prefix_name))

    def match(self, path: str, method: str) -> RouteResult:
        """Match a request path and method.

        Args:
            path: Request path, still percent-encoded
            method: HTTP method

        Returns:
            RouteResult wrapping the MatchResult and the matched route
        """
        matcher = self.get_matcher()

        start = time.perf_counter()
        result = matcher.match(path, method)
        duration = time.perf_counter() - start

        if self.metrics:
            self.metrics.record_match(result.method, result.status.value, duration)
        if self.router_logger:
            self.router_logger.log_match(
                result.method,
                path,
                result.status.value,
                route_name=result.route_name,
                latency_ms=duration * 1000,
                allowed_methods=list(result.allowed_methods),
            )

        route = self._routes.get(result.route_name) if result.route_name else None
        return RouteResult(match=result, route=route)

    def generate_uri(
        self,
        name: str,
        substitutions: Mapping[str, Any] | None = None,
        query_params: Mapping[str, Any] | None = None,
    ) -> str:
        """Generate the URL of a named route.

        Args:
            name: Route name
            substitutions: Attribute values
            query_params: Query string parameters

        Returns:
            Path, followed by the urlencoded query string when given

        Raises:
            RouteNotFoundError: If no route has this name
            MissingAttributeError: If a required attribute is missing
            AttributeMismatchError: If a value does not satisfy its constraint
        """
        try:
            uri = self._generator.generate(name, substitutions)
        except SwitchyardError as e:
            if self.metrics:
                self.metrics.record_generate_error(type(e).__name__)
            if self.router_logger:
                self.router_logger.log_generate_error(name, e)
            raise

        if query_params:
            return f"{uri}?{urlencode(query_params, doseq=True)}"
        return uri

    def require_route(self, name: str) -> Route:
        """Return a registered route.

        Raises:
            RouteNotFoundError: If no route has this name
        """
        route = self._routes.get(name)
        if route is None:
            raise RouteNotFoundError(name)
        return route

    def clear_cache(self) -> None:
        """Drop the compiled matcher, the cached dispatch data and generator layouts."""
        with self._lock:
            self._matcher = None
            self._data_loaded = False
            self._cache_stale = False
            if self.cache is not None:
                self.cache.delete(self.cache_key)
            self._generator.clear_cache()

        self._record_cache_event("clear")

    def get_matcher(self) -> Matcher:
        """Return the compiled matcher, compiling on first use."""
        matcher = self._matcher
        if matcher is not None:
            return matcher

        with self._lock:
            if self._matcher is None:
                self._matcher = Matcher(self.get_dispatch_data())
            return self._matcher

    def get_dispatch_data(self) -> DispatchData:
        """Load dispatch data from the cache or compile the registered routes."""
        start = time.perf_counter()

        data = None if self._cache_stale else self._load_cached_data()
        from_cache = data is not None
        if data is None:
            collector = RegexCollector(self.strategy, self.chunk_size)
            collector.add_routes(self._routes.values())
            data = collector.get_data()
            self._store_cached_data(data)
            self._cache_stale = False
        self._data_loaded = True

        duration = time.perf_counter() - start
        if self.metrics and not from_cache:
            self.metrics.record_compile(data.strategy, duration)
        if self.router_logger:
            self.router_logger.log_compile(
                data.route_count(),
                sum(len(chunks) for chunks in data.groups.values()),
                data.strategy,
                duration * 1000,
                from_cache=from_cache,
            )
        return data

    def _load_cached_data(self) -> DispatchData | None:
        if self.cache is None:
            return None

        blob = self.cache.get(self.cache_key)
        if blob is None:
            self._record_cache_event("miss")
            return None

        try:
            data = DispatchData.model_validate_json(blob)
        except ValidationError as e:
            logger.warning(
                f"Ignoring corrupt route cache entry: {e.error_count()} errors",
                extra={"cache_key": self.cache_key},
            )
            self._record_cache_event("corrupt")
            return None

        self._record_cache_event("hit")
        return data

    def _store_cached_data(self, data: DispatchData) -> None:
        if self.cache is None:
            return
        self.cache.set(self.cache_key, data.model_dump_json())
        self._record_cache_event("write")

    def _record_cache_event(self, event: str) -> None:
        if self.cache is None:
            return
        if self.metrics:
            self.metrics.record_cache_event(event)
        if self.router_logger:
            self.router_logger.log_cache_event(event, self.cache_key)
