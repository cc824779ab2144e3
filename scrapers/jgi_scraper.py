"""
JGI Data Portal Scraper
分页查询 JGI 门户并将原始记录归一化为 GenomeProject
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging

import httpx

from .base import RateLimitedScraper
from .normalizers import NormalizationContext, normalize_record
from config import JGISettings
from models import GenomeProject, TaxonomicDomain
from utils.exceptions import ConfigurationError, RecordParseError, UpstreamError
from utils.timeutils import to_iso, utcnow


logger = logging.getLogger(__name__)

_RECORD_KEYS = ("results", "organisms", "records")
_TOTAL_KEYS = ("total", "total_count", "totalCount", "count")


@dataclass
class PageResult:
    """一页抓取结果"""

    projects: List[GenomeProject] = field(default_factory=list)
    total_available: int = 0
    raw_count: int = 0
    failed_count: int = 0


class JGIPortalScraper(RateLimitedScraper):
    """
    JGI 门户抓取器

    特性:
    - 页码从 1 开始，页码 <= 0 直接报 ConfigurationError (上游对第 0 页会静默返回空)
    - 同一域的相邻两页之间保持礼貌间隔，不同域互不阻塞
    - 整页原子失败：状态码非 2xx 或响应无法解码时抛 UpstreamError，不返回半页结果
    - 单条记录解析失败只计数并跳过
    """

    def __init__(self, settings: JGISettings, client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            min_interval_sec=max(0, settings.request_delay_ms) / 1000.0,
            client=client,
        )
        self.settings = settings

    @property
    def name(self) -> str:
        return "JGI"

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={
                "User-Agent": self.settings.user_agent,
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(self.settings.request_timeout),
            follow_redirects=True,
        )

    def _build_params(self, domain: TaxonomicDomain, page_number: int, page_size: int) -> Dict[str, Any]:
        return {
            "q": f"{domain.value.lower()} genome",
            "superseded": self.settings.superseded,
            "dataset_type": self.settings.dataset_type,
            self.settings.page_param: page_number,
            self.settings.page_size_param: page_size,
        }

    async def fetch_page(
        self,
        domain: TaxonomicDomain,
        page_number: int,
        page_size: Optional[int] = None,
        extracted_at: Optional[str] = None,
    ) -> PageResult:
        """
        抓取某个域的一页记录

        Args:
            domain: 分类学域
            page_number: 页码 (从 1 开始)
            page_size: 每页大小，缺省使用配置值
            extracted_at: 本次运行的时间戳，写入每条记录的 extracted_at

        Returns:
            PageResult

        Raises:
            ConfigurationError: 页码或页大小非法 (在任何网络请求之前)
            UpstreamError: 上游返回非成功状态、超时或响应无法解码
        """
        if page_number is None or int(page_number) < 1:
            raise ConfigurationError(
                f"page_number must be >= 1, got {page_number}",
                {"domain": domain.value},
            )
        if page_size is None:
            page_size = self.settings.page_size
        if int(page_size) < 1:
            raise ConfigurationError(f"page_size must be >= 1, got {page_size}", {"domain": domain.value})

        await self._wait_for_rate_limit(domain.value)

        client = self._get_client()
        params = self._build_params(domain, int(page_number), int(page_size))
        logger.debug(f"[{self.name}] GET {self.settings.search_path} {params}")

        try:
            response = await client.get(self.settings.search_path, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"request failed for {domain.value} page {page_number}: {e}",
                domain=domain.value,
                page=page_number,
            ) from e

        if not response.is_success:
            raise UpstreamError(
                f"JGI API error: {response.status_code} {response.reason_phrase}",
                domain=domain.value,
                page=page_number,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            raise UpstreamError(
                f"undecodable response for {domain.value} page {page_number}",
                domain=domain.value,
                page=page_number,
                status_code=response.status_code,
            ) from e

        raw_records = self._extract_records(payload)
        if raw_records is None:
            raise UpstreamError(
                f"unexpected response shape for {domain.value} page {page_number}",
                domain=domain.value,
                page=page_number,
                status_code=response.status_code,
            )

        ctx = NormalizationContext(
            domain=domain,
            base_url=self.settings.base_url.rstrip("/"),
            extracted_at=extracted_at or to_iso(utcnow()),
        )
        result = PageResult(
            total_available=self._extract_total(payload, len(raw_records)),
            raw_count=len(raw_records),
        )
        for raw in raw_records:
            try:
                result.projects.append(normalize_record(raw, ctx))
            except RecordParseError as e:
                result.failed_count += 1
                logger.warning(f"[{self.name}] Skipping {domain.value} record on page {page_number}: {e}")

        logger.info(
            f"[{self.name}] {domain.value} page {page_number}: "
            f"{len(result.projects)} records, {result.failed_count} rejected, "
            f"{result.total_available} available"
        )
        return result

    @staticmethod
    def _extract_records(payload: Any) -> Optional[List[Any]]:
        if isinstance(payload, list):
            return payload
        if not isinstance(payload, dict):
            return None
        for key in _RECORD_KEYS:
            records = payload.get(key)
            if isinstance(records, list):
                return records
        # 没有命中任何记录字段视为空页
        return []

    @staticmethod
    def _extract_total(payload: Any, fallback: int) -> int:
        if isinstance(payload, dict):
            for key in _TOTAL_KEYS:
                value = payload.get(key)
                if isinstance(value, bool):
                    continue
                if value is None:
                    continue
                try:
                    return max(0, int(value))
                except (TypeError, ValueError, OverflowError):
                    continue
        return fallback
