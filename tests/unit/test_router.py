"""Unit tests for the router."""

import pytest
from prometheus_client import CollectorRegistry

from switchyard.core.cache import InMemoryRouteCache
from switchyard.core.config import MetricsConfig, RouteConfig, RouterConfig
from switchyard.core.exceptions import (
    AttributeMismatchError,
    DuplicateRouteError,
    MissingAttributeError,
    RouteNotFoundError,
    RouteSyntaxError,
)
from switchyard.core.metrics import RouterMetrics
from switchyard.core.router import Router


@pytest.fixture
def router() -> Router:
    router = Router()
    router.get("/users", "users.list", "users.list")
    router.post("/users", "users.create", "users.create")
    router.get("/users/{id:\\d+}", "users.show", "users.show")
    router.any("/health", "health", "health")
    return router


class TestRouterRegistration:
    """Tests for route registration."""

    def test_method_shortcuts(self):
        router = Router()
        for method in ("get", "post", "put", "patch", "delete", "head", "options"):
            getattr(router, method)("/resource", method, method)

        assert [route.sorted_methods() for route in router.routes.values()] == [
            ["GET"],
            ["POST"],
            ["PUT"],
            ["PATCH"],
            ["DELETE"],
            ["HEAD"],
            ["OPTIONS"],
        ]

    def test_route_without_name(self):
        router = Router()
        route = router.route("/users", "users", methods=["GET", "POST"])

        assert route.name == "/users^GET:POST"
        assert router.get_route("/users^GET:POST") is route

    def test_duplicate_route(self, router: Router):
        with pytest.raises(DuplicateRouteError):
            router.get("/users", "again", "users.again")

    def test_default_tokens(self):
        router = Router(tokens={"id": "\\d+"})
        route = router.get("/posts/{id}", "post", "post")

        assert route.tokens == {"id": "\\d+"}
        assert router.match("/posts/abc", "GET").is_failure
        assert router.match("/posts/12", "GET").attributes == {"id": "12"}

    def test_set_tokens_priority(self):
        router = Router(tokens={"id": "\\d+", "slug": "[a-z]+"})
        router.set_tokens({"id": "[0-9a-f]+"})

        assert router.tokens == {"id": "[0-9a-f]+", "slug": "[a-z]+"}

    def test_route_tokens_win_over_defaults(self):
        router = Router(tokens={"id": "\\d+"})
        router.get("/posts/{id:[a-z]+}", "post", "post")

        assert router.match("/posts/abc", "GET").is_success

    def test_group(self):
        router = Router()

        def register(group):
            group.get("/", "index", "index")
            group.get("/users", "users", "users")
            group.post("users/{id}", "update", "update")

        group = router.group("/admin", register, name_prefix="admin.")

        assert group.prefix == "/admin"
        assert {name: route.path for name, route in router.routes.items()} == {
            "admin.index": "/admin",
            "admin.users": "/admin/users",
            "admin.update": "/admin/users/{id}",
        }

    def test_group_middlewares(self):
        def outer(request, handler):
            return handler(request)

        def inner(request, handler):
            return handler(request)

        def own(request, handler):
            return handler(request)

        router = Router()
        group = router.group(
            "/admin", lambda g: g.get("/users", "users", "users", middlewares=[own])
        )
        group.middleware(inner).prepend_middleware(outer)

        route = router.require_route("users")
        assert route.group is group
        assert group.middleware_stack == (outer, inner)
        assert route.middleware_stack() == (outer, inner, own)

    def test_router_middlewares(self):
        def first(request, handler):
            return handler(request)

        def second(request, handler):
            return handler(request)

        router = Router()

        assert router.add_middlewares([first, second]) is router
        assert router.middleware_stack == (first, second)

    async def test_route_prefix_middleware(self):
        calls = []

        async def audit(request, handler):
            calls.append(request.path)
            return await handler(request)

        async def endpoint(request):
            return "ok"

        router = Router().route_prefix("/Admin", audit)
        (middleware,) = router.middleware_stack

        class FakeRequest:
            def __init__(self, path):
                self.path = path

        assert await middleware(FakeRequest("/admin/users"), endpoint) == "ok"
        assert await middleware(FakeRequest("/public"), endpoint) == "ok"
        assert calls == ["/admin/users"]

    def test_route_constraints(self):
        router = Router()

        route = router.get("/secure", "secure", "secure", schemes=["https"], port=8443)

        assert route.schemes == frozenset({"https"})
        assert route.port == 8443

    def test_group_without_name(self):
        router = Router()
        router.group("/api", lambda group: group.get("/ping", "ping"))

        assert list(router.routes) == ["/api/ping^GET"]

    def test_crud(self):
        router = Router()
        router.crud("/posts", "PostController", "posts")

        routes = router.routes
        assert list(routes) == [
            "posts.index",
            "posts.create",
            "posts.create.post",
            "posts.edit",
            "posts.edit.post",
            "posts.delete",
        ]
        assert routes["posts.index"].path == "/posts"
        assert routes["posts.edit"].path == "/posts/{id:\\d+}"
        assert routes["posts.delete"].target == ("PostController", "delete")

        result = router.match("/posts/42", "DELETE")
        assert result.matched_route_name == "posts.delete"
        assert result.attributes == {"id": "42"}

        result = router.match("/posts/42", "PUT")
        assert result.is_method_failure
        assert result.allowed_methods == ("GET", "POST", "DELETE")

    def test_register_after_match(self, router: Router):
        assert router.match("/late", "GET").is_failure

        router.get("/late", "late", "late")

        assert router.match("/late", "GET").matched_route_name == "late"


class TestRouterMatching:
    """Tests for Router.match."""

    def test_success(self, router: Router):
        result = router.match("/users/7", "GET")

        assert result.is_success
        assert result.route is router.get_route("users.show")
        assert result.route.target == "users.show"
        assert result.attributes == {"id": "7"}

    def test_method_failure(self, router: Router):
        result = router.match("/users", "DELETE")

        assert result.is_failure
        assert result.is_method_failure
        assert result.route is None
        assert result.allowed_methods == ("GET", "POST")

    def test_not_found(self, router: Router):
        result = router.match("/unknown", "GET")

        assert result.is_failure
        assert not result.is_method_failure
        assert result.allowed_methods == ()

    def test_any_method(self, router: Router):
        assert router.match("/health", "PATCH").matched_route_name == "health"

    def test_attributes_cannot_be_mutated(self, router: Router):
        result = router.match("/users/7", "GET")

        result.attributes["id"] = "8"

        assert result.attributes == {"id": "7"}
        with pytest.raises(TypeError):
            result.match.attributes["id"] = "8"

    def test_named_group_constraint(self):
        router = Router()
        router.get("/p/{kind:(?P<k>a|b)}[/{page}]", "p", "p")

        with pytest.raises(RouteSyntaxError):
            router.match("/p/a/2", "GET")

    @pytest.mark.parametrize("strategy", ["mark", "named"])
    def test_strategies(self, strategy: str):
        router = Router(strategy=strategy, chunk_size=2)
        for i in range(5):
            router.get(f"/r{i}/{{id}}", i, f"r{i}")

        result = router.match("/r4/x", "GET")

        assert result.matched_route_name == "r4"
        assert router.get_dispatch_data().strategy == strategy


class TestRouterGeneration:
    """Tests for Router.generate_uri."""

    def test_generate(self, router: Router):
        assert router.generate_uri("users.show", {"id": 42}) == "/users/42"

    def test_query_params(self, router: Router):
        uri = router.generate_uri("users.list", query_params={"page": 2, "tag": ["a", "b"]})

        assert uri == "/users?page=2&tag=a&tag=b"

    def test_errors(self, router: Router):
        with pytest.raises(RouteNotFoundError):
            router.generate_uri("missing")
        with pytest.raises(MissingAttributeError):
            router.generate_uri("users.show")
        with pytest.raises(AttributeMismatchError):
            router.generate_uri("users.show", {"id": "abc"})

    def test_require_route(self, router: Router):
        assert router.require_route("health").path == "/health"
        with pytest.raises(RouteNotFoundError):
            router.require_route("missing")


class TestRouterCache:
    """Tests for the compiled data cache integration."""

    def test_miss_writes_back(self):
        cache = InMemoryRouteCache()
        router = Router(cache=cache)
        router.get("/a", "a", "a")

        router.match("/a", "GET")

        assert cache.has("router_parsed_data")

    def test_hit_skips_collector(self):
        cache = InMemoryRouteCache()
        first = Router(cache=cache)
        first.get("/a/{id}", "a", "a")
        first.match("/a/1", "GET")

        second = Router(cache=cache)
        result = second.match("/a/1", "GET")

        assert result.matched_route_name == "a"
        assert result.attributes == {"id": "1"}
        assert result.route is None

    def test_corrupt_entry_is_a_miss(self):
        cache = InMemoryRouteCache()
        cache.set("routes", "{not json")
        router = Router(cache=cache, cache_key="routes")
        router.get("/a", "a", "a")

        assert router.match("/a", "GET").is_success
        assert cache.get("routes").startswith("{")
        assert "not json" not in cache.get("routes")

    def test_clear_cache(self):
        cache = InMemoryRouteCache()
        router = Router(cache=cache)
        router.get("/a", "a", "a")
        router.match("/a", "GET")

        router.clear_cache()

        assert not cache.has("router_parsed_data")

    def test_route_added_after_compile(self):
        cache = InMemoryRouteCache()
        router = Router(cache=cache)
        router.get("/a", "a", "a")
        assert router.match("/a", "GET").is_success

        router.get("/b/{id}", "b", "b")

        assert router.generate_uri("b", {"id": 1}) == "/b/1"
        result = router.match("/b/1", "GET")
        assert result.matched_route_name == "b"
        assert result.attributes == {"id": "1"}
        assert Router(cache=cache).match("/b/1", "GET").matched_route_name == "b"

    def test_route_added_after_cache_hit(self):
        cache = InMemoryRouteCache()
        first = Router(cache=cache)
        first.get("/a", "a", "a")
        first.match("/a", "GET")

        second = Router(cache=cache)
        second.get("/a", "a", "a")
        assert second.match("/a", "GET").is_success
        second.get("/c", "c", "c")

        assert second.match("/c", "GET").matched_route_name == "c"
        assert second.match("/a", "GET").matched_route_name == "a"


class TestRouterObservability:
    """Tests for metrics recorded by the router."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    def test_metrics(self, registry: CollectorRegistry):
        metrics = RouterMetrics(MetricsConfig(), registry=registry)
        router = Router(metrics=metrics, cache=InMemoryRouteCache())
        router.get("/a", "a", "a")

        router.match("/a", "GET")
        router.match("/b", "GET")
        with pytest.raises(RouteNotFoundError):
            router.generate_uri("missing")

        value = registry.get_sample_value
        assert value("switchyard_matches_total", {"method": "GET", "status": "found"}) == 1
        assert value("switchyard_matches_total", {"method": "GET", "status": "not_found"}) == 1
        assert value("switchyard_generate_errors_total", {"error_type": "RouteNotFoundError"}) == 1
        assert value("switchyard_cache_events_total", {"event": "miss"}) == 1
        assert value("switchyard_cache_events_total", {"event": "write"}) == 1
        assert value("switchyard_routes_registered") == 1


def test_from_config():
    config = RouterConfig(
        strategy="named",
        chunk_size=4,
        tokens={"id": "\\d+"},
        routes=[
            RouteConfig(path="/users/{id}", target="users.show", name="users.show", methods=["get"]),
            RouteConfig(path="/health", target="health"),
        ],
    )

    router = Router.from_config(config)

    assert router.strategy == "named"
    assert router.chunk_size == 4
    assert router.cache is None
    assert list(router.routes) == ["users.show", "/health"]
    assert router.match("/users/5", "GET").attributes == {"id": "5"}
    assert router.match("/users/abc", "GET").is_failure


def test_from_config_route_constraints():
    config = RouterConfig(
        routes=[
            RouteConfig(
                path="/secure",
                target="secure",
                name="secure",
                host="api\\.example\\.com",
                port=8443,
                schemes=["HTTPS"],
            ),
        ],
    )

    route = Router.from_config(config).require_route("secure")

    assert route.host == "api\\.example\\.com"
    assert route.port == 8443
    assert route.schemes == frozenset({"https"})
