"""
Unit tests for URL router.
"""

from http import HTTPStatus

import pytest

from diagserver.http.request import HTTPRequest
from diagserver.http.response import HTTPResponse, ResponseBuilder
from diagserver.http.router import Router


def make_request(path: str, method: str = "GET") -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def handler_for(label: str):
    """Handler that answers with its own label."""
    def handler(request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().text(label).build()
    return handler


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        route = router.add_route("/hello", handler_for("hello"), name="hello")

        assert route.path == "/hello"
        assert route.name == "hello"
        assert [r.path for r in router.routes()] == ["/hello"]

    def test_add_route_requires_leading_slash(self):
        with pytest.raises(ValueError):
            Router().add_route("hello", handler_for("hello"))

    def test_duplicate_route_rejected(self):
        router = Router()
        router.add_route("/hello", handler_for("a"))

        with pytest.raises(ValueError):
            router.add_route("/hello", handler_for("b"))

    def test_match_exact_path(self):
        """Test matching exact paths."""
        router = Router()
        router.add_route("/hello", handler_for("hello"))
        router.add_route("/headers", handler_for("headers"))

        assert router.match("/hello").path == "/hello"
        assert router.match("/headers").path == "/headers"
        assert router.match("/missing") is None

    def test_root_is_catch_all(self):
        """Test that "/" matches every path without an exact route."""
        router = Router()
        router.add_route("/", handler_for("root"))
        router.add_route("/hello", handler_for("hello"))

        assert router.match("/hello").path == "/hello"
        assert router.match("/hello/").path == "/"
        assert router.match("/nope/deeper").path == "/"

    def test_longest_subtree_wins(self):
        router = Router()
        router.add_route("/", handler_for("root"))
        router.add_route("/static/", handler_for("static"))

        assert router.match("/static/css/site.css").path == "/static/"
        assert router.match("/other").path == "/"

    def test_route_decorator(self):
        """Test the decorator form."""
        router = Router()

        @router.route("/hello")
        def hello(request):
            return ResponseBuilder().text("hello\n").build()

        assert router.match("/hello").handler is hello

    def test_handle_dispatches(self):
        router = Router()
        router.add_route("/hello", handler_for("hello"))

        response = router.handle(make_request("/hello"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"hello"

    def test_handle_not_found(self):
        """Test 404 when nothing matches."""
        router = Router()
        router.add_route("/hello", handler_for("hello"))

        response = router.handle(make_request("/missing"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"404 page not found\n"

    def test_method_is_not_part_of_route(self):
        """Handlers, not the router, decide which methods they accept."""
        router = Router()
        router.add_route("/hello", handler_for("hello"))

        response = router.handle(make_request("/hello", method="DELETE"))

        assert response.body == b"hello"
