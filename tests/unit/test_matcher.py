"""Unit tests for the matcher runtime."""

import pytest

from switchyard.core.collector import RegexCollector
from switchyard.core.dispatch import DispatchData
from switchyard.core.matcher import Matcher, MatchStatus
from switchyard.core.route import Route

ARCHIVE = r"/archive/{year:\d{4}}[/{month:\d{2}};/{day:\d{2}}]"


def build_matcher(routes: list[Route], strategy: str = "mark", chunk_size: int = 15) -> Matcher:
    collector = RegexCollector(strategy, chunk_size)
    collector.add_routes(routes)
    return Matcher(collector.get_data())


@pytest.fixture(params=["mark", "named"])
def strategy(request: pytest.FixtureRequest) -> str:
    return request.param


class TestMatcher:
    """Tests for Matcher class, run against both strategies."""

    def test_static_match(self, strategy: str):
        matcher = build_matcher([Route("/users", "list", "users", ["GET"])], strategy)

        result = matcher.match("/users", "GET")

        assert result.status is MatchStatus.FOUND
        assert result.route_name == "users"
        assert result.attributes == {}
        assert result.method == "GET"

    @pytest.mark.parametrize(
        "path,attributes",
        [
            ("/archive/2024", {"year": "2024"}),
            ("/archive/2024/05", {"year": "2024", "month": "05"}),
            ("/archive/2024/05/17", {"year": "2024", "month": "05", "day": "17"}),
        ],
    )
    def test_optional_chain(self, strategy: str, path: str, attributes: dict[str, str]):
        matcher = build_matcher([Route(ARCHIVE, "archive", "archive", ["GET"])], strategy)

        result = matcher.match(path, "GET")

        assert result.is_found
        assert result.route_name == "archive"
        assert result.attributes == attributes

    @pytest.mark.parametrize("path", ["/archive/24", "/archive", "/archive/2024/5", "/archive/2024/05/17/1"])
    def test_optional_chain_rejects(self, strategy: str, path: str):
        matcher = build_matcher([Route(ARCHIVE, "archive", "archive", ["GET"])], strategy)

        assert matcher.match(path, "GET").status is MatchStatus.NOT_FOUND

    def test_attributes_across_routes_in_chunk(self, strategy: str):
        """Attributes come from the matched route, not earlier alternatives."""
        matcher = build_matcher(
            [
                Route("/posts/{slug:[a-z]+}", "post", "post", ["GET"]),
                Route("/{kind:(photo|video)}/{id:\\d+}", "media", "media", ["GET"]),
                Route(ARCHIVE, "archive", "archive", ["GET"]),
            ],
            strategy,
        )

        assert matcher.match("/video/7", "GET").attributes == {"kind": "video", "id": "7"}
        assert matcher.match("/archive/2024/05", "GET").attributes == {
            "year": "2024",
            "month": "05",
        }
        assert matcher.match("/posts/hello", "GET").route_name == "post"

    def test_percent_decoding(self, strategy: str):
        matcher = build_matcher([Route("/users/{name}", "user", "user", ["GET"])], strategy)

        result = matcher.match("/users/john%20doe", "GET")

        assert result.attributes == {"name": "john doe"}

    def test_empty_capture_skipped(self, strategy: str):
        matcher = build_matcher([Route("/files/{path:.*}", "files", "files", ["GET"])], strategy)

        assert matcher.match("/files/", "GET").attributes == {}
        assert matcher.match("/files/a/b", "GET").attributes == {"path": "a/b"}

    def test_method_not_allowed(self, strategy: str):
        matcher = build_matcher([Route("/widgets", "list", "widgets", ["GET"])], strategy)

        result = matcher.match("/widgets", "POST")

        assert result.status is MatchStatus.METHOD_NOT_ALLOWED
        assert result.allowed_methods == ("GET",)
        assert result.failed_routes == ("widgets",)
        assert result.route_name is None

    def test_allowed_methods_deduplicated(self, strategy: str):
        matcher = build_matcher(
            [
                Route("/w", "w", "w", ["GET", "PUT"]),
                Route("/w[/{page}]", "w-page", "w-page", ["GET"]),
            ],
            strategy,
        )

        result = matcher.match("/w", "DELETE")

        assert result.allowed_methods == ("GET", "PUT")
        assert result.failed_routes == ("w",)

    def test_not_found(self, strategy: str):
        matcher = build_matcher([Route("/widgets", "list", "widgets", ["GET"])], strategy)

        result = matcher.match("/unknown", "GET")

        assert result.status is MatchStatus.NOT_FOUND
        assert result.allowed_methods == ()

    def test_any_method_route(self, strategy: str):
        matcher = build_matcher([Route("/health", "health", "health")], strategy)

        for method in ("GET", "DELETE", "TRACE"):
            result = matcher.match("/health", method)
            assert result.is_found
            assert result.route_name == "health"

    def test_exact_method_before_any(self, strategy: str):
        matcher = build_matcher(
            [
                Route("/x", "any-x", "any-x"),
                Route("/x", "get-x", "get-x", ["GET"]),
            ],
            strategy,
        )

        assert matcher.match("/x", "GET").route_name == "get-x"
        assert matcher.match("/x", "POST").route_name == "any-x"

    def test_first_registered_route_wins(self, strategy: str):
        matcher = build_matcher(
            [
                Route("/users/{id}", "user", "user", ["GET"]),
                Route("/users/new", "new", "new", ["GET"]),
            ],
            strategy,
        )

        assert matcher.match("/users/new", "GET").route_name == "user"

    def test_method_is_case_insensitive(self, strategy: str):
        matcher = build_matcher([Route("/users", "list", "users", ["GET"])], strategy)

        result = matcher.match("/users", "get")

        assert result.is_found
        assert result.method == "GET"

    def test_match_across_chunks(self, strategy: str):
        routes = [Route(f"/r{i}/{{id}}", i, f"r{i}", ["GET"]) for i in range(7)]
        matcher = build_matcher(routes, strategy, chunk_size=3)

        result = matcher.match("/r6/abc", "GET")

        assert result.route_name == "r6"
        assert result.attributes == {"id": "abc"}

    def test_chain_at_pattern_start(self, strategy: str):
        matcher = build_matcher([Route("[/{lang};/{page}]", "home", "home", ["GET"])], strategy)

        assert matcher.match("/", "GET").attributes == {}
        assert matcher.match("/en", "GET").attributes == {"lang": "en"}
        assert matcher.match("/en/2", "GET").attributes == {"lang": "en", "page": "2"}

    def test_hyphenated_attribute(self, strategy: str):
        matcher = build_matcher([Route("/users/{user-id}", "user", "user", ["GET"])], strategy)

        assert matcher.match("/users/7", "GET").attributes == {"user-id": "7"}

    def test_results_are_independent(self, strategy: str):
        matcher = build_matcher([Route("/users/{id}", "user", "user", ["GET"])], strategy)

        first = matcher.match("/users/1", "GET")
        second = matcher.match("/users/2", "GET")

        assert first.attributes == {"id": "1"}
        assert second.attributes == {"id": "2"}

    def test_matcher_from_serialized_data(self, strategy: str):
        collector = RegexCollector(strategy)
        collector.add_route(Route(ARCHIVE, "archive", "archive", ["GET"]))
        data = DispatchData.model_validate_json(collector.get_data().model_dump_json())

        result = Matcher(data).match("/archive/2024/05", "GET")

        assert result.attributes == {"year": "2024", "month": "05"}
