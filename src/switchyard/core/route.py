"""Route record, HTTP method and request constraint handling."""

import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from switchyard.core.exceptions import InvalidRouteError

if TYPE_CHECKING:
    from switchyard.core.group import RouteGroup

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD", "CONNECT", "TRACE")

# Joins methods in generated route names: "/users^GET:POST"
METHOD_SEPARATOR = ":"

# aiohttp-style middleware: async (request, handler) -> response
Middleware = Callable[[Any, Callable[[Any], Awaitable[Any]]], Awaitable[Any]]


def normalize_methods(methods: str | Iterable[str] | None) -> frozenset[str] | None:
    """Validate and upper-case HTTP methods.

    Args:
        methods: A method, several methods, or None for any method

    Returns:
        Frozen set of upper-case methods, or None for any method

    Raises:
        InvalidRouteError: If the set is empty or holds an unknown method
    """
    if methods is None:
        return None
    if isinstance(methods, str):
        methods = [methods]

    normalized = [method.upper() for method in methods]
    if not normalized:
        raise InvalidRouteError("Http methods array is empty")

    for method in normalized:
        if method not in HTTP_METHODS:
            raise InvalidRouteError(f"Invalid HTTP method: {method}")

    return frozenset(normalized)


def normalize_schemes(schemes: str | Iterable[str] | None) -> frozenset[str] | None:
    """Lower-case URL schemes; None or an empty set allows any scheme."""
    if schemes is None:
        return None
    if isinstance(schemes, str):
        schemes = [schemes]
    return frozenset(scheme.lower() for scheme in schemes) or None


@dataclass(frozen=True)
class Route:
    """A registered route.

    Attributes:
        path: Route pattern
        target: Opaque handler value, never inspected by the router
        name: Unique route name
        methods: Allowed methods, or None when any method is allowed
        tokens: Attribute constraint overrides for this route
        host: Host regex, matched case-insensitively against the whole host
        port: Required request port
        schemes: Allowed URL schemes, or None when any scheme is allowed
        middlewares: Middlewares wrapping this route's target
        group: Group the route was registered through
    """

    path: str
    target: Any
    name: str = ""
    methods: frozenset[str] | None = None
    tokens: Mapping[str, str] = field(default_factory=dict)
    host: str | None = None
    port: int | None = None
    schemes: frozenset[str] | None = None
    middlewares: tuple[Middleware, ...] = ()
    group: "RouteGroup | None" = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        methods = normalize_methods(self.methods)
        object.__setattr__(self, "methods", methods)
        object.__setattr__(self, "tokens", dict(self.tokens))
        object.__setattr__(self, "schemes", normalize_schemes(self.schemes))
        object.__setattr__(self, "middlewares", tuple(self.middlewares))
        if not self.name:
            object.__setattr__(self, "name", self.default_name(self.path, methods))

        if self.host is not None:
            try:
                re.compile(self.host)
            except re.error as e:
                raise InvalidRouteError(f"Invalid host pattern `{self.host}`: {e}") from e
        if self.port is not None and not 0 < self.port < 65536:
            raise InvalidRouteError(f"Invalid port: {self.port}")

    @staticmethod
    def default_name(path: str, methods: frozenset[str] | None) -> str:
        """Build the name of a route registered without one."""
        if methods is None:
            return path
        ordered = [method for method in HTTP_METHODS if method in methods]
        return f"{path}^{METHOD_SEPARATOR.join(ordered)}"

    def allows_any_method(self) -> bool:
        return self.methods is None

    def allows_method(self, method: str) -> bool:
        """Check whether the route accepts an HTTP method."""
        return self.allows_any_method() or method.upper() in (self.methods or ())

    def allows_any_scheme(self) -> bool:
        return self.schemes is None

    def allows_scheme(self, scheme: str) -> bool:
        return self.allows_any_scheme() or scheme.lower() in (self.schemes or ())

    def allows_host(self, host: str | None) -> bool:
        if self.host is None:
            return True
        return host is not None and re.fullmatch(self.host, host, re.IGNORECASE) is not None

    def allows_port(self, port: int | None) -> bool:
        return self.port is None or port == self.port

    def accepts(self, scheme: str, host: str | None, port: int | None) -> bool:
        """Check the request scheme, host and port against the route constraints."""
        return self.allows_scheme(scheme) and self.allows_host(host) and self.allows_port(port)

    def middleware_stack(self) -> tuple[Middleware, ...]:
        """Group middlewares followed by the route's own, outermost first."""
        inherited = self.group.middleware_stack if self.group is not None else ()
        return inherited + self.middlewares

    def sorted_methods(self) -> list[str]:
        """Allowed methods in canonical order, empty for any method."""
        if self.methods is None:
            return []
        return [method for method in HTTP_METHODS if method in self.methods]

    def with_tokens(self, tokens: Mapping[str, str]) -> "Route":
        """Return a copy with default tokens merged in; the route's own tokens win."""
        return replace(self, tokens={**tokens, **self.tokens})
