"""Tests for the builtin context behaviors."""

from __future__ import annotations

from email.utils import formatdate
from typing import Any

import pytest

from handler_chain.behaviors import BUILTIN_FUNCTIONS, FLASH_KEY
from handler_chain.exceptions import InvalidArgument, TemplateRenderError
from handler_chain.files import LocalFile, MemoryFile
from handler_chain.registry import FunctionShape

REDIRECT_CODES = list(range(300, 309))


class TestBuiltinTable:
    def test_expected_names(self) -> None:
        assert set(BUILTIN_FUNCTIONS) == {
            "abort",
            "all_flash_messages",
            "cookie",
            "cookies",
            "flash",
            "flash_messages",
            "redirect",
            "render_template",
            "serve_data",
            "serve_plain",
            "serve_file",
            "url_for",
        }

    def test_shapes(self) -> None:
        assert BUILTIN_FUNCTIONS["redirect"].shape is FunctionShape.PAIR
        assert BUILTIN_FUNCTIONS["url_for"].shape is FunctionShape.PAIR
        assert BUILTIN_FUNCTIONS["flash"].shape is FunctionShape.SINGLE


class TestRedirect:
    @pytest.mark.parametrize("code", REDIRECT_CODES)
    async def test_valid_code_sends_headers_once(
        self, make_context: Any, stream: Any, code: int
    ) -> None:
        ctx = make_context()
        error = await ctx.redirect(code, "/login")
        assert error is None
        assert len(stream.header_sends) == 1
        assert stream.status == code
        assert stream.header("location") == "/login"
        assert stream.chunks == []

    @pytest.mark.parametrize("code", [200, 299, 309, 404, -1])
    async def test_invalid_code_does_no_io(
        self, make_context: Any, stream: Any, code: int
    ) -> None:
        ctx = make_context()
        error = await ctx.redirect(code, "/login")
        assert isinstance(error, InvalidArgument)
        assert str(error) == f"Cannot send a redirect with status code {code}"
        assert stream.header_sends == []
        assert stream.chunks == []
        assert ctx.writer.written is False

    async def test_relative_location_resolved(
        self, make_context: Any, make_request: Any, stream: Any
    ) -> None:
        ctx = make_context(request=make_request(path="/account/settings"))
        await ctx.redirect(302, "profile")
        assert stream.header("location") == "/account/profile"

    async def test_absolute_location_kept(self, make_context: Any, stream: Any) -> None:
        ctx = make_context()
        await ctx.redirect(301, "https://example.com/x")
        assert stream.header("location") == "https://example.com/x"

    async def test_session_cookie_sent_with_redirect(
        self, make_context: Any, stream: Any
    ) -> None:
        ctx = make_context()
        await ctx.flash("info", "saved")
        await ctx.redirect(303, "/")
        assert stream.header("set-cookie") is not None


class TestServeData:
    async def test_writes_status_type_and_body(
        self, make_context: Any, stream: Any
    ) -> None:
        ctx = make_context()
        error = await ctx.serve_data(201, b"created")
        assert error is None
        assert stream.status == 201
        assert stream.header("content-type") == "text/plain; charset=utf-8"
        assert stream.body == b"created"

    async def test_serve_plain_alias_accepts_str(
        self, make_context: Any, stream: Any
    ) -> None:
        ctx = make_context()
        await ctx.serve_plain(200, "héllo")
        assert stream.body == "héllo".encode()


class TestServeFile:
    async def test_serves_local_file(
        self, make_context: Any, stream: Any, tmp_path: Any
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_bytes(b"remember")
        ctx = make_context()
        error = await ctx.serve_file(LocalFile(path))
        assert error is None
        assert stream.status == 200
        assert stream.header("content-type") == "text/plain"
        assert stream.header("content-length") == "8"
        assert stream.header("last-modified") is not None
        assert stream.body == b"remember"

    async def test_unknown_type_is_octet_stream(
        self, make_context: Any, stream: Any
    ) -> None:
        ctx = make_context()
        await ctx.serve_file(MemoryFile("blob", b"\x00\x01"))
        assert stream.header("content-type") == "application/octet-stream"

    async def test_not_modified(
        self, make_context: Any, make_request: Any, stream: Any
    ) -> None:
        modified = 1_700_000_000.0
        request = make_request(
            headers={"if-modified-since": formatdate(modified + 60, usegmt=True)}
        )
        ctx = make_context(request=request)
        error = await ctx.serve_file(MemoryFile("a.css", b"body{}", modified=modified))
        assert error is None
        assert stream.status == 304
        assert stream.chunks == []

    async def test_modified_since_older_serves_body(
        self, make_context: Any, make_request: Any, stream: Any
    ) -> None:
        modified = 1_700_000_000.0
        request = make_request(
            headers={"if-modified-since": formatdate(modified - 60, usegmt=True)}
        )
        ctx = make_context(request=request)
        await ctx.serve_file(MemoryFile("a.css", b"body{}", modified=modified))
        assert stream.status == 200
        assert stream.body == b"body{}"

    async def test_head_sends_headers_only(
        self, make_context: Any, make_request: Any, stream: Any
    ) -> None:
        ctx = make_context(request=make_request(method="HEAD"))
        await ctx.serve_file(MemoryFile("a.txt", b"abc"))
        assert stream.header("content-length") == "3"
        assert stream.chunks == []

    async def test_missing_file_returns_error(
        self, make_context: Any, stream: Any, tmp_path: Any
    ) -> None:
        ctx = make_context()
        error = await ctx.serve_file(LocalFile(tmp_path / "nope.txt"))
        assert isinstance(error, FileNotFoundError)
        assert stream.header_sends == []


class TestCookies:
    async def test_cookie_sent_with_headers(self, make_context: Any, stream: Any) -> None:
        ctx = make_context(with_session=False)
        error = await ctx.cookie("theme", "dark", max_age=60, httponly=True)
        assert error is None
        await ctx.serve_plain(200, "ok")
        cookies = [v for k, v in stream.header_sends[0][1] if k == b"set-cookie"]
        assert len(cookies) == 1
        assert cookies[0].startswith(b"theme=dark")
        assert b"Max-Age=60" in cookies[0]
        assert b"Path=/" in cookies[0]
        assert b"HttpOnly" in cookies[0]

    async def test_cookies_sets_each_value(self, make_context: Any, stream: Any) -> None:
        ctx = make_context(with_session=False)
        assert await ctx.cookies({"a": "1", "b": "2"}, secure=True) is None
        headers = ctx.writer.headers.getlist("set-cookie")
        assert [h.split(";")[0] for h in headers] == ["a=1", "b=2"]
        assert all("Secure" in h for h in headers)

    async def test_unknown_attribute_is_error(self, make_context: Any) -> None:
        ctx = make_context(with_session=False)
        error = await ctx.cookie("a", "1", colour="blue")
        assert isinstance(error, InvalidArgument)
        assert "set-cookie" not in ctx.writer.headers

    async def test_after_headers_is_error(self, make_context: Any, stream: Any) -> None:
        ctx = make_context(with_session=False)
        await ctx.writer.write_header_now()
        error = await ctx.cookie("a", "1")
        assert isinstance(error, InvalidArgument)
        assert len(stream.header_sends) == 1


class TestFlash:
    async def test_pop_by_category(self, make_context: Any) -> None:
        ctx = make_context()
        await ctx.flash("info", "a")
        assert await ctx.flash_messages("info") == ["a"]
        assert await ctx.flash_messages("info") == []

    async def test_last_write_wins_per_category(self, make_context: Any) -> None:
        ctx = make_context()
        await ctx.flash("info", "a")
        await ctx.flash("info", "b")
        assert await ctx.flash_messages("info") == ["b"]

    async def test_unmatched_categories_remain(self, make_context: Any) -> None:
        ctx = make_context()
        await ctx.flash("info", "a")
        await ctx.flash("error", "b")
        assert await ctx.flash_messages("error") == ["b"]
        assert ctx.session.get(FLASH_KEY) == {"info": "a"}

    async def test_all_flash_messages_empties_store(self, make_context: Any) -> None:
        ctx = make_context()
        await ctx.flash("info", "a")
        await ctx.flash("error", "b")
        assert await ctx.all_flash_messages() == {"info": "a", "error": "b"}
        assert ctx.session.get(FLASH_KEY) is None
        assert await ctx.all_flash_messages() == {}

    async def test_no_flashes(self, make_context: Any) -> None:
        ctx = make_context()
        assert await ctx.flash_messages("info") == []
        assert await ctx.all_flash_messages() == {}

    async def test_without_session(self, make_context: Any) -> None:
        ctx = make_context(with_session=False)
        await ctx.flash("info", "a")
        assert await ctx.flash_messages("info") == []


class TestUrlFor:
    async def test_relative(self, app: Any, make_context: Any) -> None:
        async def show(ctx: Any) -> None:
            pass

        app.add_route("GET", "/users/{user_id}/posts/{slug}", show, name="post")
        ctx = make_context()
        assert await ctx.url_relative("post", "7", "hello") == "/users/7/posts/hello"

    async def test_external_uses_request_host(self, app: Any, make_context: Any) -> None:
        async def index(ctx: Any) -> None:
            pass

        app.add_route("GET", "/", index, name="index")
        ctx = make_context()
        assert await ctx.url_external("index") == "http://testserver/"

    async def test_missing_route_returns_error_text(self, make_context: Any) -> None:
        ctx = make_context()
        text = await ctx.url_relative("missing-route")
        assert text == "unable to get url for route missing-route with params []"

    async def test_param_mismatch_returns_error_text(
        self, app: Any, make_context: Any
    ) -> None:
        async def show(ctx: Any) -> None:
            pass

        app.add_route("GET", "/users/{user_id}", show, name="user")
        ctx = make_context()
        text = await ctx.url_relative("user")
        assert text.startswith("unable to get url for route user")

    async def test_convertor_rejects_bad_param(self, app: Any, make_context: Any) -> None:
        async def show(ctx: Any) -> None:
            pass

        app.add_route("GET", "/items/{item_id:int}", show, name="item")
        ctx = make_context()
        assert await ctx.url_relative("item", "12") == "/items/12"
        assert (await ctx.url_relative("item", "abc")).startswith("unable to get url")


class TestRenderTemplate:
    async def test_renders_with_envelope(
        self, app: Any, make_context: Any, stream: Any, tmp_path: Any
    ) -> None:
        (tmp_path / "page.html").write_text(
            "{{ data.title }}|{{ flash.info }}|{{ store.user }}"
        )
        app.env.templator.add_template_dirs(str(tmp_path))
        ctx = make_context()
        ctx.set("user", "alice")
        await ctx.flash("info", "welcome")

        error = await ctx.render_template("page.html", {"title": "Home"})
        assert error is None
        assert stream.body == b"Home|welcome|alice"
        assert stream.header("content-type") == "text/html; charset=utf-8"
        assert stream.header("set-cookie") is not None
        assert await ctx.all_flash_messages() == {}

    async def test_missing_template_returns_error(
        self, make_context: Any, stream: Any
    ) -> None:
        ctx = make_context()
        error = await ctx.render_template("nope.html")
        assert isinstance(error, TemplateRenderError)
        assert stream.chunks == []

    async def test_without_templator(self, app: Any, make_context: Any) -> None:
        app.env.templator = None
        ctx = make_context()
        error = await ctx.render_template("page.html")
        assert isinstance(error, TemplateRenderError)


class TestOverride:
    async def test_unannotated_override_keeps_error_value(
        self, app: Any, make_context: Any
    ) -> None:
        app.add_function(
            "redirect", lambda ctx, code, location: (None, ValueError(location))
        )
        ctx = make_context()
        error = await ctx.redirect(302, "/x")
        assert isinstance(error, ValueError)

    async def test_custom_redirect_policy(self, app: Any, make_context: Any) -> None:
        seen: list[tuple[int, str]] = []

        def redirect(ctx: Any, code: int, location: str) -> None:
            seen.append((code, location))

        app.add_function("redirect", redirect)
        ctx = make_context()
        assert await ctx.redirect(302, "/x") is None
        assert seen == [(302, "/x")]
