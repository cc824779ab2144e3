"""
Base Scraper
抓取器抽象基类
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional
import asyncio
import logging
import time

import httpx


logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """
    抓取器抽象基类
    持有一个 httpx.AsyncClient；外部注入的 client 由调用方负责关闭
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self._owns_client = client is None

    @property
    @abstractmethod
    def name(self) -> str:
        """返回抓取器名称"""
        pass

    @abstractmethod
    def _build_client(self) -> httpx.AsyncClient:
        """创建默认 HTTP 客户端"""
        pass

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._build_client()
            self._owns_client = True
        return self._client

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def close(self):
        """清理资源"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _log_error(self, message: str, error: Exception):
        """记录错误日志"""
        logger.error(f"[{self.name}] {message}: {error}")


class RateLimitedScraper(BaseScraper):
    """
    带礼貌间隔的抓取器基类

    间隔按 key (例如分类学域) 独立计算，一个 key 的等待不会阻塞其他 key。
    """

    def __init__(self, min_interval_sec: float = 0.1, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client=client)
        self._min_interval = max(0.0, float(min_interval_sec))
        self._last_request_time: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def _wait_for_rate_limit(self, key: str = "default"):
        """等待满足同一 key 的最小请求间隔"""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            last = self._last_request_time.get(key)
            if last is not None:
                elapsed = time.monotonic() - last
                if elapsed < self._min_interval:
                    await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time[key] = time.monotonic()
