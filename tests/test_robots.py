"""Tests for robots.txt parsing and the per-origin policy cache."""

import asyncio

import httpx
import pytest

from regwatch.robots import (
    RobotsPolicyCache,
    parse_robots_txt,
    path_matches,
    robots_origin,
)

pytest_plugins = ('pytest_asyncio',)


class TestPathMatches:
    """Tests for Disallow rule matching."""

    def test_exact_path(self):
        assert path_matches("/admin", "/admin") is True

    def test_wildcard_suffix(self):
        assert path_matches("/admin/users", "/admin/*") is True

    def test_trailing_slash_prefix(self):
        assert path_matches("/admin/users", "/admin/") is True

    def test_different_directory(self):
        assert path_matches("/public", "/admin/") is False

    def test_path_boundary(self):
        """A rule without trailing slash must not match a longer sibling name."""
        assert path_matches("/admins", "/admin/") is False
        assert path_matches("/admins", "/admin") is False
        assert path_matches("/admin/users", "/admin") is True

    def test_root_rule_blocks_everything(self):
        assert path_matches("/anything/at/all", "/") is True

    def test_query_string_is_a_boundary(self):
        assert path_matches("/search?q=x", "/search") is True
        assert path_matches("/searching?q=x", "/search") is False

    def test_directory_rule_covers_directory_without_slash(self):
        """Normalized crawl URLs drop the trailing slash."""
        assert path_matches("/private", "/private/") is True
        assert path_matches("/private?page=2", "/private/") is True
        assert path_matches("/privateer", "/private/") is False


class TestParseRobotsTxt:
    """Tests for robots.txt parsing."""

    def test_ignores_comments_blank_lines_and_allow(self):
        rules = parse_robots_txt(
            "# comment\n"
            "\n"
            "User-agent: *\n"
            "Disallow: /admin/  # trailing comment\n"
            "Allow: /admin/public\n"
            "Disallow: /private\n"
        )
        assert rules.disallow_rules_for("AnyBot") == ["/admin/", "/private"]

    def test_empty_disallow_allows_everything(self):
        rules = parse_robots_txt("User-agent: *\nDisallow:\n")
        assert rules.disallow_rules_for("AnyBot") == []
        assert rules.is_allowed("/anything", "AnyBot") is True

    def test_named_group_overrides_wildcard(self):
        rules = parse_robots_txt(
            "User-agent: *\n"
            "Disallow: /\n"
            "\n"
            "User-agent: RegwatchBot\n"
            "Disallow: /drafts/\n"
        )
        assert rules.is_allowed("/news/story", "RegwatchBot/1.0") is True
        assert rules.is_allowed("/drafts/x", "RegwatchBot/1.0") is False
        assert rules.is_allowed("/news/story", "OtherBot") is False

    def test_consecutive_user_agents_share_group(self):
        rules = parse_robots_txt(
            "User-agent: FooBot\n"
            "User-agent: BarBot\n"
            "Disallow: /x/\n"
        )
        assert rules.is_allowed("/x/1", "FooBot") is False
        assert rules.is_allowed("/x/1", "BarBot") is False
        assert rules.is_allowed("/x/1", "BazBot") is True


class TestRobotsOrigin:
    """Tests for origin derivation."""

    def test_includes_port(self):
        assert robots_origin("http://localhost:8080/a/b?c=1") == "http://localhost:8080"

    def test_rejects_relative_url(self):
        with pytest.raises(ValueError):
            robots_origin("/relative/path")


class TestRobotsPolicyCache:
    """Tests for RobotsPolicyCache."""

    @staticmethod
    def _transport(robots_txt=None, status=200, calls=None, error=None):
        def handler(request):
            if calls is not None:
                calls.append(str(request.url))
            if error is not None:
                raise error
            if robots_txt is None:
                return httpx.Response(status, text="")
            return httpx.Response(status, text=robots_txt)
        return httpx.MockTransport(handler)

    @pytest.mark.asyncio
    async def test_disallowed_path(self):
        """Disallowed paths are denied, others allowed."""
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow: /private/\n"))

        assert await cache.is_allowed("https://example.com/private/doc") is False
        assert await cache.is_allowed("https://example.com/public/doc") is True

    @pytest.mark.asyncio
    async def test_disallowed_path_with_query(self):
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow: /search\n"))

        assert await cache.is_allowed("https://example.com/search?q=x") is False
        assert await cache.is_allowed("https://example.com/search") is False
        assert await cache.is_allowed("https://example.com/news?q=x") is True

    @pytest.mark.asyncio
    async def test_404_means_no_restrictions(self):
        calls = []
        cache = RobotsPolicyCache(transport=self._transport(status=404, calls=calls))

        assert await cache.is_allowed("https://example.com/anything") is True
        assert await cache.is_allowed("https://example.com/else") is True
        assert len(calls) == 1  # 404 result is cached

    @pytest.mark.asyncio
    async def test_fetch_error_fails_open(self):
        """A DNS/connection failure allows the URL and is not cached."""
        calls = []
        cache = RobotsPolicyCache(
            transport=self._transport(calls=calls, error=httpx.ConnectError("Name or service not known"))
        )

        assert await cache.is_allowed("https://unreachable.example/page") is True
        assert await cache.is_allowed("https://unreachable.example/page") is True
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_server_error_fails_open(self):
        cache = RobotsPolicyCache(transport=self._transport("Disallow: /", status=503))
        assert await cache.is_allowed("https://example.com/page") is True

    @pytest.mark.asyncio
    async def test_malformed_url_fails_open(self):
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow: /\n"))
        assert await cache.is_allowed("not a url") is True

    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self):
        now = [1000.0]
        calls = []
        cache = RobotsPolicyCache(
            ttl=3600,
            transport=self._transport("User-agent: *\nDisallow: /x/\n", calls=calls),
            clock=lambda: now[0],
        )

        await cache.is_allowed("https://example.com/a")
        now[0] += 1800
        await cache.is_allowed("https://example.com/b")
        assert len(calls) == 1

        now[0] += 3600
        await cache.is_allowed("https://example.com/c")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_origins_cached_separately(self):
        calls = []
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow:\n", calls=calls))

        await cache.is_allowed("https://a.example.com/x")
        await cache.is_allowed("https://b.example.com/x")
        await cache.is_allowed("http://a.example.com:8080/x")

        assert calls == [
            "https://a.example.com/robots.txt",
            "https://b.example.com/robots.txt",
            "http://a.example.com:8080/robots.txt",
        ]

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(self):
        calls = []
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow:\n", calls=calls))

        results = await asyncio.gather(*[
            cache.is_allowed(f"https://example.com/page-{i}") for i in range(5)
        ])

        assert results == [True] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        calls = []
        cache = RobotsPolicyCache(transport=self._transport("User-agent: *\nDisallow:\n", calls=calls))

        await cache.is_allowed("https://example.com/a")
        cache.clear_cache()
        await cache.is_allowed("https://example.com/a")

        assert len(calls) == 2
