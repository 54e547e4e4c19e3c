"""Bounded breadth-first crawler for regulatory and news sources."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

import httpx
from bs4 import BeautifulSoup

from regwatch.article_classifier import ArticleClassifier
from regwatch.change_detector import DocumentChangeDetector
from regwatch.config import CrawlSettings, settings
from regwatch.database import AbstractStore
from regwatch.extractor import ContentExtractor
from regwatch.fetch import BrowserFetch, DirectFetch, FetchStrategy
from regwatch.links import LinkFilter, normalize_url
from regwatch.models import (
    CrawlJob,
    CrawlStats,
    FetchedPage,
    FrontierEntry,
    JobStatus,
    PageOutcome,
    PageResult,
    Source,
)
from regwatch.robots import RobotsPolicyCache
from regwatch.utils.challenge_handler import detect_challenge

logger = logging.getLogger(__name__)


class MultiPageCrawler:
    """Crawls one source breadth-first within depth, page and concurrency limits.

    Each call to crawl_source() runs one crawl job:

    - Sends one preflight request to the base URL and switches the whole
      job to a headless browser when a bot challenge is served
    - Checks robots.txt for every URL
    - Persists article pages, deduplicated by content fingerprint
    - Follows links from listing pages without persisting them
    - Writes the job's status and counters when it ends

    Listing pages contribute links at depth + 1 even when they sit at
    max_depth. Paginated archives rely on this to reach articles several
    listing pages deep, so the depth bound is intentionally not applied
    to them.
    """

    def __init__(
        self,
        base_url: str,
        store: AbstractStore,
        robots: RobotsPolicyCache,
        source_config: Optional[Dict[str, Any]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
        robots_user_agent: Optional[str] = None,
        direct_fetch: Optional[DirectFetch] = None,
        browser_factory: Optional[Callable[[], FetchStrategy]] = None,
        extractor: Optional[ContentExtractor] = None,
        change_detector: Optional[DocumentChangeDetector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the crawler.

        Args:
            base_url: Start URL of the crawl
            store: Document and job store
            robots: Shared robots.txt policy cache
            source_config: Crawl options stored on the source
            overrides: Call-time crawl options, winning over source_config
            user_agent: User agent for page fetches
            robots_user_agent: Agent token matched against robots.txt groups
            direct_fetch: HTTP strategy (tests pass one with a mock transport)
            browser_factory: Builds the browser strategy when a challenge is detected
            extractor: Content extractor
            change_detector: Version tracker used when track_changes is set
            sleep: Coroutine used for the politeness delay

        Raises:
            CrawlConfigError: If the merged configuration is invalid
        """
        self.config = CrawlSettings.resolve(base_url, source_config, overrides)
        self.base_url = normalize_url(self.config.base_url)
        self.store = store
        self.robots = robots
        self.user_agent = user_agent or settings.USER_AGENT
        self.robots_user_agent = robots_user_agent or settings.ROBOTS_USER_AGENT

        self.direct_fetch = direct_fetch or DirectFetch(user_agent=self.user_agent)
        self.browser_factory = browser_factory or (
            lambda: BrowserFetch(user_agent=self.user_agent, headless=settings.HEADLESS)
        )
        self.extractor = extractor or ContentExtractor()
        self.classifier = ArticleClassifier(
            enabled=self.config.skip_category_pages,
            blocked_path_patterns=self.config.blocked_path_patterns,
            article_indicators=self.config.article_indicators,
        )
        self.link_filter = LinkFilter(
            self.base_url,
            allowed_path_patterns=self.config.allowed_path_patterns,
            blocked_path_patterns=self.config.blocked_path_patterns,
            follow_external_links=self.config.follow_external_links,
        )
        self.change_detector = change_detector
        if self.config.track_changes and self.change_detector is None:
            self.change_detector = DocumentChangeDetector(store)
        self._sleep = sleep

        self.semaphore = asyncio.Semaphore(self.config.concurrency)
        self.frontier: Deque[FrontierEntry] = deque()
        self.pending: Set[str] = set()
        self.visited: Set[str] = set()
        self.fetched: List[FrontierEntry] = []
        self.stats = CrawlStats()
        self.strategy: Optional[FetchStrategy] = None
        self.using_browser = False
        self._strategies: List[FetchStrategy] = []
        self._fetches_started = 0

        logger.info(
            f"Initialized crawler for {self.base_url} "
            f"(max_depth={self.config.max_depth}, max_pages={self.config.max_pages}, "
            f"concurrency={self.config.concurrency})"
        )

    async def crawl_source(self, source_id: int, job_id: int) -> CrawlStats:
        """Run one crawl job to completion.

        Args:
            source_id: Source whose documents are being crawled
            job_id: Pending crawl job to drive

        Returns:
            Aggregated CrawlStats

        Raises:
            Exception: Any catastrophic error, after the job is marked failed
        """
        logger.info(f"Starting crawl for source {source_id}, job {job_id}")

        try:
            try:
                self.strategy = await self._select_strategy()
                self._enqueue(FrontierEntry(url=self.base_url, depth=0))
                await self.store.update_job_status(job_id, JobStatus.RUNNING)
                await self._execute_crawl_loop(source_id, job_id)
            finally:
                await self._close_strategies()

            await self.store.update_job_status(job_id, JobStatus.DONE, self.stats)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            logger.error(f"Crawl job {job_id} failed: {error_message}")
            try:
                await self.store.update_job_status(job_id, JobStatus.FAILED, self.stats, error=error_message)
            except Exception as status_error:
                logger.error(f"Could not record failure of job {job_id}: {status_error}")
            raise

        logger.info(f"✓ Crawl job {job_id} completed: {self.stats.to_dict()}")
        return self.stats

    async def _select_strategy(self) -> FetchStrategy:
        """Send a preflight request to the base URL and pick the fetch strategy for the whole job."""
        self._strategies.append(self.direct_fetch)
        await self.direct_fetch.open()

        reason = None
        try:
            response = await self.direct_fetch.preflight(self.base_url)
        except httpx.HTTPError as e:
            reason = f"preflight failed ({e})"
        else:
            challenge = detect_challenge(response.html)
            if challenge:
                reason = f"challenge detected ({challenge})"
            elif response.status_code >= 400:
                reason = f"preflight returned HTTP {response.status_code}"

        if reason is None:
            return self.direct_fetch

        logger.info(f"Switching to browser fetch for {self.base_url}: {reason}")
        browser = self.browser_factory()
        self._strategies.append(browser)
        await browser.open()
        self.using_browser = True
        return browser

    async def _close_strategies(self) -> None:
        while self._strategies:
            strategy = self._strategies.pop()
            try:
                await strategy.close()
            except Exception as e:
                logger.warning(f"⚠️  Error closing {strategy.name} fetch strategy: {e}")

    async def _execute_crawl_loop(self, source_id: int, job_id: int) -> None:
        """Process the frontier in batches of up to `concurrency` entries."""
        while self.frontier and self._fetches_started < self.config.max_pages:
            batch: List[FrontierEntry] = []
            while self.frontier and len(batch) < self.config.concurrency:
                entry = self.frontier.popleft()
                self.pending.discard(entry.url)
                batch.append(entry)

            tasks = [self._crawl_page(entry, source_id, job_id) for entry in batch]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            first_error: Optional[BaseException] = None
            for result in results:
                if isinstance(result, BaseException):
                    first_error = first_error or result
                else:
                    self._account(result)

            if first_error is not None:
                raise first_error

    def _account(self, result: PageResult) -> None:
        if result.fetched:
            self.stats.pages_crawled += 1
        if result.outcome == PageOutcome.NEW:
            self.stats.pages_new += 1
        elif result.outcome == PageOutcome.FAILED:
            self.stats.pages_failed += 1
        elif result.outcome == PageOutcome.SKIPPED:
            self.stats.pages_skipped += 1

    async def _crawl_page(self, entry: FrontierEntry, source_id: int, job_id: int) -> PageResult:
        """Run the page pipeline for one frontier entry.

        The politeness delay follows every outcome except CAP_REACHED,
        where no request was made and the crawl is winding down.
        """
        already_visited = entry.url in self.visited
        self.visited.add(entry.url)

        async with self.semaphore:
            if already_visited:
                result = PageResult(PageOutcome.SKIPPED)
            else:
                result = await self._process_entry(entry, source_id, job_id)
            if result.outcome != PageOutcome.CAP_REACHED and self.config.politeness_delay > 0:
                await self._sleep(self.config.politeness_delay)
            return result

    async def _process_entry(self, entry: FrontierEntry, source_id: int, job_id: int) -> PageResult:
        url = entry.url

        if not await self.robots.is_allowed(url, self.robots_user_agent):
            logger.info(f"Skipping {url} (disallowed by robots.txt)")
            return PageResult(PageOutcome.SKIPPED)

        if self._fetches_started >= self.config.max_pages:
            return PageResult(PageOutcome.CAP_REACHED)
        self._fetches_started += 1
        self.fetched.append(entry)

        try:
            response = await self.strategy.fetch(url)
        except Exception as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            return PageResult(PageOutcome.FAILED)

        try:
            page = self.extractor.extract(response.html, url, response.final_url)
            is_article = self._is_article(url, response.html)
        except Exception as e:
            logger.error(f"Failed to parse {url}: {e}")
            return PageResult(PageOutcome.FAILED, fetched=True)

        if not is_article and entry.depth < self.config.max_depth:
            queued = self._enqueue_links(entry, page)
            logger.info(f"⊘ Listing page {url} (depth {entry.depth}), queued {queued} links")
            return PageResult(PageOutcome.LISTING, fetched=True)

        outcome = await self._persist(entry, page, source_id, job_id)

        if entry.depth < self.config.max_depth or not is_article:
            self._enqueue_links(entry, page)

        return PageResult(outcome, fetched=True)

    def _is_article(self, url: str, html: str) -> bool:
        if not self.classifier.enabled:
            return True
        return self.classifier.is_article(url, BeautifulSoup(html or "", "html.parser"))

    async def _persist(self, entry: FrontierEntry, page: FetchedPage, source_id: int, job_id: int) -> PageOutcome:
        """Store a page as a document unless its fingerprint is already known."""
        inserted = False
        existing = await self.store.find_by_fingerprint(page.content_hash)
        if existing is None:
            inserted = await self.store.insert_document(
                source_id=source_id,
                crawl_job_id=job_id,
                url=entry.url,
                title=page.title,
                content=page.content,
                content_hash=page.content_hash,
            )

        await self.store.record_crawl_page(
            crawl_job_id=job_id,
            url=entry.url,
            content_hash=page.content_hash,
            is_duplicate=not inserted,
            depth=entry.depth,
            referrer=entry.referrer,
        )

        if self.change_detector is not None:
            await self.change_detector.process_document(
                source_id,
                {"url": entry.url, "title": page.title, "summary": page.content},
                crawl_job_id=job_id,
            )

        if inserted:
            logger.info(f"✓ New document: {entry.url}")
            return PageOutcome.NEW

        logger.info(f"Duplicate content for {entry.url}")
        return PageOutcome.DUPLICATE

    def _enqueue_links(self, entry: FrontierEntry, page: FetchedPage) -> int:
        links = self.link_filter.filter(page.final_url, page.links, self.visited, self.pending)
        for link in links:
            self._enqueue(FrontierEntry(url=link, depth=entry.depth + 1, referrer=entry.url))
        return len(links)

    def _enqueue(self, entry: FrontierEntry) -> None:
        if entry.url in self.visited or entry.url in self.pending:
            return
        self.pending.add(entry.url)
        self.frontier.append(entry)


def create_multi_page_crawler(
    source: Source,
    store: AbstractStore,
    robots: RobotsPolicyCache,
    overrides: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> MultiPageCrawler:
    """Build a crawler for a registered source.

    Args:
        source: Source record supplying the base URL and stored crawl config
        store: Document and job store
        robots: Shared robots.txt policy cache
        overrides: Call-time crawl options
        **kwargs: Passed through to MultiPageCrawler

    Returns:
        Configured MultiPageCrawler
    """
    return MultiPageCrawler(
        source.url,
        store,
        robots,
        source_config=source.crawler_config,
        overrides=overrides,
        **kwargs,
    )


async def run_crawl_job(
    store: AbstractStore,
    robots: RobotsPolicyCache,
    source_id: int,
    overrides: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> Tuple[CrawlJob, CrawlStats]:
    """Create a pending job for a source and crawl it.

    Args:
        store: Document and job store
        robots: Shared robots.txt policy cache
        source_id: Source to crawl
        overrides: Call-time crawl options
        **kwargs: Passed through to MultiPageCrawler

    Returns:
        The finished job row and its stats

    Raises:
        ValueError: If the source does not exist
    """
    source = await store.get_source(source_id)
    if source is None:
        raise ValueError(f"Unknown source: {source_id}")

    crawler = create_multi_page_crawler(source, store, robots, overrides, **kwargs)
    job = await store.create_job(
        source_id,
        max_depth=crawler.config.max_depth,
        max_pages=crawler.config.max_pages,
        crawl_config=crawler.config.to_dict(),
    )
    stats = await crawler.crawl_source(source_id, job.id)
    return await store.get_job(job.id), stats
