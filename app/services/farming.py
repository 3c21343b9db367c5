"""
Hangout farming: a durable FIFO pool of pre-created hangout URLs
"""

import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class HangoutPool:
    """Service for handing out farmed hangout URLs"""

    def __init__(self, repo):
        self.repo = repo

    async def get_next_hangout_url(self) -> Optional[str]:
        """Pop the oldest farmed URL, or None when the pool is empty"""
        url = await run_in_threadpool(self.repo.pop)
        if url is None:
            logger.warning("Ran out of farmed hangout urls")
        else:
            logger.info(f"Handing out farmed hangout url {url}")
        return url

    async def reuse_url(self, url: str) -> None:
        await run_in_threadpool(self.repo.push, url)
        logger.debug(f"Queued hangout url {url}")

    async def get_num_hangouts_available(self) -> int:
        return await run_in_threadpool(self.repo.count)
