"""
Unit tests for the diagnostic pages, called without a socket.
"""

import re
from http import HTTPStatus

import pytest
from structlog.testing import capture_logs

from diagserver.handlers import Handler
from diagserver.handlers import diagnostics
from diagserver.handlers.utils import dump_request, valid_method
from diagserver.http.router import Router
from diagserver.templates import MSG_TEMPLATE_ERROR, Safe, TemplateError, Templates


@pytest.fixture
def templates() -> Templates:
    return Templates.load()


@pytest.fixture
def router(templates) -> Router:
    router = Router()
    Handler("Diag <Test>", templates).register(router)
    return router


class TestValidMethod:
    """Tests for valid_method()."""

    def test_allowed(self, make_request):
        assert valid_method(make_request("GET"), "GET") is None

    def test_options_gets_204(self, make_request):
        response = valid_method(make_request("OPTIONS"), "GET")

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.headers["Allow"] == "GET, OPTIONS"
        assert response.body == b""

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH", "BREW"])
    def test_other_methods_get_405(self, make_request, method):
        response = valid_method(make_request(method), "GET")

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, OPTIONS"
        assert response.body == f"{method} Method Not Allowed\n".encode()


class TestRegistration:

    def test_routes(self, router):
        assert [r.path for r in router.routes()] == [
            "/", "/build", "/headers", "/hello", "/hellohtml", "/remote", "/request",
        ]

    @pytest.mark.parametrize(
        "path", ["/", "/hello", "/hellohtml", "/headers", "/remote", "/request", "/build"]
    )
    def test_every_page_rejects_post(self, router, make_request, path):
        response = router.handle(make_request("POST", path))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, OPTIONS"

    @pytest.mark.parametrize("path", ["/", "/hello", "/headers"])
    def test_every_page_answers_options(self, router, make_request, path):
        response = router.handle(make_request("OPTIONS", path))

        assert response.status == HTTPStatus.NO_CONTENT


class TestRootPage:

    def test_root(self, router, make_request):
        response = router.handle(make_request(target="/"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert b'<a href="/hello">' in response.body

    def test_title_is_escaped(self, router, make_request):
        response = router.handle(make_request(target="/"))

        assert b"<title>Diag &lt;Test&gt;</title>" in response.body

    @pytest.mark.parametrize("path", ["/missing", "/hello/", "/a/b/c"])
    def test_unknown_path_is_404(self, router, make_request, path):
        response = router.handle(make_request(target=path))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"404 page not found\n"

    def test_unknown_path_checks_method_first(self, router, make_request):
        response = router.handle(make_request("DELETE", "/missing"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED


class TestHelloPages:

    def test_hello(self, router, make_request):
        response = router.handle(make_request(target="/hello"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"hello\n"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_hello_html(self, router, make_request):
        response = router.handle(make_request(target="/hellohtml"))

        assert response.status == HTTPStatus.OK
        assert b"<p>hello</p>" in response.body
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"


class TestHeadersPage:

    def test_headers_sorted(self, router, make_request):
        request = make_request(target="/headers", headers={"Zeta": "z", "Accept": "*/*"})

        body = router.handle(request).body.decode()

        names = re.findall(r"<tr><td>([^<]+)</td>", body)
        assert names == ["Accept", "Host", "Zeta"]
        assert "<title>Request Headers</title>" in body

    def test_header_values_escaped(self, router, make_request):
        request = make_request(target="/headers", headers={"X-Evil": "<script>alert(1)</script>"})

        body = router.handle(request).body.decode()

        assert "<script>" not in body
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body

    def test_repeated_header_joined(self, make_request):
        request = make_request(headers={"X-Dup": "one"})
        request.headers["X-Dup"].append("two")

        assert "<td>X-Dup</td><td>one, two</td>" in diagnostics.header_rows(request)


class TestTemplateFailure:

    def test_broken_template_gives_500(self, tmp_path, make_request):
        (tmp_path / "root.html").write_text("<h1>$title $undefined</h1>")
        router = Router()
        Handler("Diag", Templates.load(tmp_path)).register(router)

        with capture_logs() as logs:
            response = router.handle(make_request(target="/"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == (MSG_TEMPLATE_ERROR + "\n").encode()
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert logs[-1]["event"] == "unable to render template"

    def test_missing_template_gives_500(self, tmp_path, make_request):
        (tmp_path / "root.html").write_text("<h1>$title</h1>")
        router = Router()
        Handler("Diag", Templates.load(tmp_path)).register(router)

        response = router.handle(make_request(target="/hellohtml"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert "Cache-Control" not in response.headers

    def test_no_templates(self, make_request):
        router = Router()
        Handler("Diag", None).register(router)

        assert router.handle(make_request(target="/")).status == HTTPStatus.INTERNAL_SERVER_ERROR
        # Plain-text pages do not need templates
        assert router.handle(make_request(target="/hello")).status == HTTPStatus.OK


class TestRemotePage:

    def test_peer_only(self, router, make_request):
        response = router.handle(make_request(target="/remote"))

        assert response.body == b"RemoteAddr: 10.0.0.1:5555\n"

    def test_proxy_headers_listed(self, router, make_request):
        request = make_request(
            target="/remote",
            headers={
                "X-Real-IP": "203.0.113.7",
                "X-Forwarded-For": "203.0.113.7, 10.0.0.2",
                "X-Unrelated": "ignored",
            },
        )

        lines = router.handle(request).body.decode().splitlines()

        assert lines == [
            "RemoteAddr: 10.0.0.1:5555",
            "X-Forwarded-For: 203.0.113.7, 10.0.0.2",
            "X-Real-Ip: 203.0.113.7",
        ]

    def test_ipv6_peer(self, router, make_request):
        request = make_request(target="/remote", client_address=("::1", 4000, 0, 0))

        assert router.handle(request).body == b"RemoteAddr: [::1]:4000\n"


class TestRequestPage:

    def test_dump(self, router, make_request):
        request = make_request(target="/request?x=1", headers={"X-B": "2", "Accept": "*/*"})

        response = router.handle(request)

        assert response.body == (
            b"GET /request?x=1 HTTP/1.1\r\n"
            b"Host: localhost:8080\r\n"
            b"Accept: */*\r\n"
            b"X-B: 2\r\n"
            b"\r\n"
            b"\n"
        )

    def test_dump_includes_body(self, make_request):
        request = make_request("POST", "/request", body=b"name=diag")

        dump = dump_request(request)

        assert dump.startswith("POST /request HTTP/1.1\r\nHost: localhost:8080\r\n")
        assert "Content-Length: 9\r\n" in dump
        assert dump.endswith("\r\n\r\nname=diag")


class TestBuildPage:

    def test_build_time(self, router, make_request):
        response = router.handle(make_request(target="/build"))

        assert response.status == HTTPStatus.OK
        assert re.fullmatch(rb"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\n", response.body)
        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_stat_failure(self, router, make_request, monkeypatch):
        def broken():
            raise OSError("gone")

        monkeypatch.setattr(diagnostics, "executable_mtime", broken)

        response = router.handle(make_request(target="/build"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == (MSG_TEMPLATE_ERROR + "\n").encode()


class TestTemplates:
    """Tests for template loading and rendering."""

    def test_packaged_templates(self, templates):
        assert templates.names() == ["headers.html", "hello.html", "root.html"]

    def test_load_ignores_other_files(self, tmp_path):
        (tmp_path / "page.html").write_text("$x")
        (tmp_path / "notes.txt").write_text("not a template")

        assert Templates.load(tmp_path).names() == ["page.html"]

    def test_empty_directory(self, tmp_path):
        with pytest.raises(TemplateError, match="no .html files"):
            Templates.load(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(TemplateError):
            Templates.load(tmp_path / "nope")

    def test_invalid_placeholder(self, tmp_path):
        (tmp_path / "bad.html").write_text("<p>costs $ 5</p>")

        with pytest.raises(TemplateError, match="invalid placeholder"):
            Templates.load(tmp_path)

    def test_render_escapes_and_trusts_safe(self, tmp_path):
        (tmp_path / "page.html").write_text("$a|$b")
        templates = Templates.load(tmp_path)

        assert templates.render("page.html", a="<b>", b=Safe("<i>ok</i>")) == "&lt;b&gt;|<i>ok</i>"

    def test_render_unknown(self, templates):
        with pytest.raises(TemplateError, match="no such template"):
            templates.render("nope.html")
