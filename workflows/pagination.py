"""
Pagination driver: walks a target's search pages.

Pages are fetched one at a time with a fixed pause after each fetch. The
walk stops at max_pages, at the first short page, on an empty page or a
fetch that failed once its retries were spent (both after a longer recovery
pause), or when storing a page fails.
"""

from __future__ import annotations

import logging

from collectors.github_issues import GitHubIssuesClient, normalize_paging
from services.targets import RepositoryTarget
from utils.pacing import Pacer, SleepInterrupted
from workflows.persistence import PersistenceGateway
from workflows.results import RunResult, TargetResult, TargetStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 10
DEFAULT_PAGE_SIZE = 100
DEFAULT_PAGE_DELAY_SECONDS = 30.0
DEFAULT_RECOVERY_DELAY_SECONDS = 120.0


class PaginationDriver:
    """
    Fetch and persist all pages for one target.

    Usage:
        driver = PaginationDriver(client, gateway, pacer)
        target_result = await driver.collect(target)
    """

    def __init__(
        self,
        client: GitHubIssuesClient,
        gateway: PersistenceGateway,
        pacer: Pacer,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        recovery_delay: float = DEFAULT_RECOVERY_DELAY_SECONDS,
    ):
        self.client = client
        self.gateway = gateway
        self.pacer = pacer
        self.max_pages = max_pages
        _, self.page_size = normalize_paging(1, page_size)
        self.page_delay = page_delay
        self.recovery_delay = recovery_delay

    async def collect(self, target: RepositoryTarget) -> TargetResult:
        """
        Walk the target's pages.

        Returns:
            TargetResult: SUCCESS; PARTIAL when a fetch failed or a pause was
            interrupted; ERROR when storing a page failed (e.g.
            RepositoryResolutionError). Counts of stored pages are kept.
        """
        total = RunResult()
        pages_fetched = 0
        status = TargetStatus.SUCCESS
        error_message = None

        logger.info(f"Syncing {target.full_name} (labels: {list(target.labels) or 'any'})")

        try:
            for page in range(1, self.max_pages + 1):
                try:
                    search = await self.client.search(target, page, self.page_size)
                except SleepInterrupted:
                    raise
                except Exception as e:
                    logger.warning(
                        f"Fetching {target.full_name} page {page} failed; "
                        f"waiting {self.recovery_delay:.0f}s before moving on: {e}"
                    )
                    status = TargetStatus.PARTIAL
                    error_message = f"page {page} fetch failed: {e}"
                    await self.pacer.sleep(self.recovery_delay)
                    break

                pages_fetched += 1
                await self.pacer.sleep(self.page_delay)

                if search.is_empty:
                    logger.info(
                        f"{target.full_name} page {page} empty; "
                        f"waiting {self.recovery_delay:.0f}s before moving on"
                    )
                    await self.pacer.sleep(self.recovery_delay)
                    break

                try:
                    page_result = await self.gateway.persist_page(search.items, target)
                except SleepInterrupted:
                    raise
                except Exception as e:
                    # Earlier pages are committed; report them with the failure
                    logger.exception(f"Storing {target.full_name} page {page} failed")
                    status = TargetStatus.ERROR
                    error_message = f"page {page} store failed: {e}"
                    break

                total = total + page_result
                logger.info(f"{target.full_name} page {page}: {page_result.summary()}")

                if len(search.items) < self.page_size:
                    break

        except SleepInterrupted as e:
            logger.warning(f"Sync of {target.full_name} interrupted after {pages_fetched} pages: {e}")
            status = TargetStatus.PARTIAL
            error_message = f"interrupted: {e}"

        logger.info(f"{target.full_name} done ({pages_fetched} pages): {total.summary()}")
        return TargetResult(
            target=target.full_name,
            status=status,
            result=total,
            pages_fetched=pages_fetched,
            error_message=error_message,
        )
