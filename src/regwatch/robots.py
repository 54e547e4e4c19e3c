"""robots.txt fetching, parsing and per-origin caching."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from regwatch.constants import (
    DESKTOP_USER_AGENT,
    ROBOTS_CACHE_TTL_SECONDS,
    ROBOTS_FETCH_TIMEOUT_SECONDS,
    ROBOTS_USER_AGENT,
)

logger = logging.getLogger(__name__)


@dataclass
class RobotsGroup:
    """Disallow rules declared under one or more User-agent lines."""

    agents: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)


@dataclass
class RobotsRules:
    """Parsed robots.txt for one origin."""

    groups: List[RobotsGroup] = field(default_factory=list)
    # Rules that appear before any User-agent line
    global_disallow: List[str] = field(default_factory=list)

    def disallow_rules_for(self, user_agent: str) -> List[str]:
        """Collect the Disallow rules that apply to a user agent.

        Groups naming a token contained in the user agent take precedence
        over '*' groups.

        Args:
            user_agent: The crawler's user agent string

        Returns:
            List of Disallow path rules
        """
        agent_lower = (user_agent or "").lower()
        named = [
            group for group in self.groups
            if any(a != "*" and a in agent_lower for a in group.agents)
        ]
        selected = named or [group for group in self.groups if "*" in group.agents]

        rules = list(self.global_disallow)
        for group in selected:
            rules.extend(group.disallow)
        return rules

    def is_allowed(self, path: str, user_agent: str) -> bool:
        return not any(path_matches(path, rule) for rule in self.disallow_rules_for(user_agent))


def parse_robots_txt(content: str) -> RobotsRules:
    """Parse robots.txt content into per-agent Disallow groups.

    Comments, blank lines and directives other than User-agent and Disallow
    are ignored. An empty Disallow value allows everything and is dropped.

    Args:
        content: Raw robots.txt text

    Returns:
        Parsed RobotsRules
    """
    rules = RobotsRules()
    current: Optional[RobotsGroup] = None
    last_was_agent = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            # Consecutive User-agent lines share one group
            if current is None or not last_was_agent:
                current = RobotsGroup()
                rules.groups.append(current)
            current.agents.append(value.lower())
            last_was_agent = True
            continue

        last_was_agent = False
        if directive == "disallow" and value:
            if current is None:
                rules.global_disallow.append(value)
            else:
                current.disallow.append(value)

    return rules


def path_matches(path: str, rule: str) -> bool:
    """Check whether a URL path is covered by a Disallow rule.

    A trailing '*' makes the rule a plain prefix, a trailing '/' covers
    the directory itself and everything below it, and any other rule
    matches the exact path or a prefix ending at '/' or '?' ('/admin'
    covers '/admin/users' and '/admin?tab=1' but not '/admins').

    Crawled URLs are normalized without a trailing slash, so '/private/'
    also covers '/private' and '/private?page=2'.

    Args:
        path: URL path (with query string if any)
        rule: Disallow rule value

    Returns:
        True if the path is disallowed by the rule
    """
    if rule.endswith("*"):
        return path.startswith(rule[:-1])
    if rule.endswith("/"):
        if path.startswith(rule):
            return True
        rule = rule[:-1]
        if not rule:
            return False
    return path == rule or path.startswith((rule + "/", rule + "?"))


def robots_origin(url: str) -> str:
    """Return scheme://host[:port] for a URL."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


class RobotsPolicyCache:
    """Answers robots.txt allow/deny queries with a per-origin TTL cache.

    One instance is shared by every crawl in the process. Concurrent lookups
    for an uncached origin wait on a single in-flight fetch.
    """

    def __init__(
        self,
        ttl: float = ROBOTS_CACHE_TTL_SECONDS,
        timeout: float = ROBOTS_FETCH_TIMEOUT_SECONDS,
        fetch_user_agent: str = DESKTOP_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl: Seconds a parsed robots.txt stays cached
            timeout: robots.txt fetch timeout in seconds
            fetch_user_agent: User-Agent header sent when fetching robots.txt
            transport: Optional httpx transport (tests use httpx.MockTransport)
            clock: Monotonic time source
        """
        self.ttl = ttl
        self.timeout = timeout
        self.fetch_user_agent = fetch_user_agent
        self._transport = transport
        self._clock = clock
        self._cache: Dict[str, Tuple[RobotsRules, float]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    async def is_allowed(self, url: str, user_agent: str = ROBOTS_USER_AGENT) -> bool:
        """Check whether robots.txt permits fetching a URL.

        Never raises. Any failure to fetch or parse robots.txt allows the URL.

        Args:
            url: Absolute URL to check
            user_agent: Agent token matched against User-agent groups

        Returns:
            False only if a Disallow rule covers the URL's path
        """
        try:
            origin = robots_origin(url)
            rules = await self._get_rules(origin)
            if rules is None:
                return True

            parsed = urlparse(url)
            path = parsed.path or "/"
            if parsed.query:
                path += f"?{parsed.query}"

            allowed = rules.is_allowed(path, user_agent)
            if not allowed:
                logger.debug(f"robots.txt disallows {url}")
            return allowed
        except Exception as e:
            logger.warning(f"⚠️  robots.txt check failed for {url}, allowing: {e}")
            return True

    def clear_cache(self) -> None:
        """Drop every cached robots.txt."""
        self._cache.clear()

    async def _get_rules(self, origin: str) -> Optional[RobotsRules]:
        cached = self._cache.get(origin)
        if cached is not None:
            rules, fetched_at = cached
            if self._clock() - fetched_at < self.ttl:
                return rules
            del self._cache[origin]

        task = self._inflight.get(origin)
        if task is None:
            task = asyncio.ensure_future(self._fetch_rules(origin))
            self._inflight[origin] = task
            task.add_done_callback(lambda _: self._inflight.pop(origin, None))

        return await asyncio.shield(task)

    async def _fetch_rules(self, origin: str) -> Optional[RobotsRules]:
        """Fetch and parse robots.txt for an origin.

        Returns:
            Parsed rules (cached), or None when the status gives no answer
        """
        robots_url = f"{origin}/robots.txt"
        headers = {
            "User-Agent": self.fetch_user_agent,
            "Accept": "text/plain,text/html,*/*",
        }
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.get(robots_url, headers=headers)

        if response.status_code == 200:
            rules = parse_robots_txt(response.text)
            logger.info(f"Loaded robots.txt from {robots_url}")
        elif response.status_code == 404:
            rules = RobotsRules()
            logger.debug(f"No robots.txt at {robots_url}")
        else:
            logger.warning(f"robots.txt returned {response.status_code} for {robots_url}, allowing")
            return None

        self._cache[origin] = (rules, self._clock())
        return rules
