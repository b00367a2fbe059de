"""Route registration helpers shared by the router and route groups."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Self

from switchyard.core.route import Middleware, Route

if TYPE_CHECKING:
    from switchyard.core.router import Router


def prefixed_middleware(prefix: str, middleware: Middleware) -> Middleware:
    """Run a middleware only for request paths starting with prefix (case-insensitive)."""
    lowered = prefix.lower()

    async def middleware_for_prefix(request: Any, handler: Callable[[Any], Any]) -> Any:
        if request.path.lower().startswith(lowered):
            return await middleware(request, handler)
        return await handler(request)

    return middleware_for_prefix


class MiddlewareStackMixin:
    """Ordered middleware stack; the first middleware is the outermost."""

    _middlewares: list[Middleware]

    def middleware(self, middleware: Middleware) -> Self:
        self._middlewares.append(middleware)
        return self

    def add_middlewares(self, middlewares: Iterable[Middleware]) -> Self:
        for middleware in middlewares:
            self.middleware(middleware)
        return self

    def prepend_middleware(self, middleware: Middleware) -> Self:
        self._middlewares.insert(0, middleware)
        return self

    def route_prefix(self, prefix: str, middleware: Middleware) -> Self:
        """Add a middleware that only runs for paths under prefix."""
        return self.middleware(prefixed_middleware(prefix, middleware))

    @property
    def middleware_stack(self) -> tuple[Middleware, ...]:
        return tuple(self._middlewares)


class RouteCollectionMixin(ABC):
    """HTTP method shortcuts on top of route()."""

    @abstractmethod
    def route(
        self,
        path: str,
        target: Any,
        name: str | None = None,
        methods: str | Iterable[str] | None = None,
        **options: Any,
    ) -> Route:
        """Register a route.

        Args:
            path: Route pattern
            target: Handler value
            name: Unique route name; derived from path and methods when omitted
            methods: Allowed HTTP methods, None for any method
            **options: Route keyword fields (host, port, schemes, middlewares, tokens)

        Returns:
            The registered Route
        """

    def get(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["GET"], **options)

    def post(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["POST"], **options)

    def put(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["PUT"], **options)

    def patch(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["PATCH"], **options)

    def delete(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["DELETE"], **options)

    def head(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["HEAD"], **options)

    def options(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, ["OPTIONS"], **options)

    def any(self, path: str, target: Any, name: str | None = None, **options: Any) -> Route:
        return self.route(path, target, name, None, **options)


class RouteGroup(MiddlewareStackMixin, RouteCollectionMixin):
    """Registers routes under a shared path prefix.

    Routes keep a reference to their group, so middlewares added to the group
    apply to its routes at dispatch time, including ones added after
    registration.

    Example::

        router.group("/admin", lambda g: g.get("/users", handler, "users"), name_prefix="admin.")
        # registers "/admin/users" as "admin.users"
    """

    def __init__(
        self,
        prefix: str,
        callback: Callable[["RouteGroup"], Any],
        router: "Router",
        name_prefix: str = "",
    ):
        self.prefix = prefix
        self.callback = callback
        self.router = router
        self.name_prefix = name_prefix
        self._middlewares = []

    def __call__(self) -> "RouteGroup":
        self.callback(self)
        return self

    def join(self, path: str) -> str:
        """Prefix a route path; "/" maps to the bare prefix."""
        if path == "/":
            return self.prefix
        return f"{self.prefix}/{path.lstrip('/')}"

    def route(
        self,
        path: str,
        target: Any,
        name: str | None = None,
        methods: str | Iterable[str] | None = None,
        **options: Any,
    ) -> Route:
        if name and self.name_prefix:
            name = self.name_prefix + name
        return self.router.route(self.join(path), target, name, methods, group=self, **options)

    def crud(self, target: Any, prefix_name: str) -> "RouteGroup":
        """Register the index, create, edit and delete routes of a resource.

        Targets are (target, action) tuples; ids are constrained to digits.
        """
        self.get("/", (target, "index"), f"{prefix_name}.index")
        self.get("/new", (target, "create"), f"{prefix_name}.create")
        self.post("/new", (target, "create"), f"{prefix_name}.create.post")
        self.get("/{id:\\d+}", (target, "edit"), f"{prefix_name}.edit")
        self.post("/{id:\\d+}", (target, "edit"), f"{prefix_name}.edit.post")
        self.delete("/{id:\\d+}", (target, "delete"), f"{prefix_name}.delete")
        return self
