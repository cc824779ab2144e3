"""
Shared fixtures for the genome pipeline tests
"""
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import AnalyticsSettings, ExtractionSettings, StorageSettings
from models import GenomeMetadata, GenomeProject, GenomeUrls, TaxonomicDomain
from scrapers import PageResult
from storage import GenomeDataStore, MemoryCache, MemoryObjectStore
from utils.exceptions import UpstreamError


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_project(
    project_id: str,
    domain: TaxonomicDomain = TaxonomicDomain.BACTERIA,
    submission_date: str = "2024-06-10T00:00:00.000Z",
    gene_count: Optional[int] = 100,
    sequence_length: Optional[int] = 100000,
    status: str = "available",
    organism: str = "Escherichia coli",
    extracted_at: str = "2024-06-15T12:00:00.000Z",
) -> GenomeProject:
    genus, _, species = organism.partition(" ")
    return GenomeProject(
        id=project_id,
        name=f"{organism} {project_id}",
        organism=organism,
        sequence_type="Genome Assembly",
        status=status,
        submission_date=submission_date,
        sequence_length=sequence_length,
        gene_count=gene_count,
        metadata=GenomeMetadata(domain=domain, genus=genus or None, species=species or None),
        urls=GenomeUrls(portal=f"https://files.jgi.doe.gov/file/{project_id}"),
        extracted_at=extracted_at,
    )


class FakeScraper:
    """
    Scripted page source: pages[(domain, page_number)] is a PageResult or an exception to raise
    """

    def __init__(self, pages: Dict[Tuple[TaxonomicDomain, int], object]):
        self.pages = pages
        self.calls: List[Tuple[TaxonomicDomain, int]] = []
        self.closed = False

    async def fetch_page(self, domain, page_number, page_size=None, extracted_at=None):
        self.calls.append((domain, page_number))
        outcome = self.pages.get((domain, page_number))
        if outcome is None:
            return PageResult(total_available=0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


def page_of(domain: TaxonomicDomain, prefix: str, count: int, total: int) -> PageResult:
    projects = [make_project(f"{prefix}{i}", domain=domain) for i in range(count)]
    return PageResult(projects=projects, total_available=total, raw_count=count)


def upstream_failure(domain: TaxonomicDomain, page: int) -> UpstreamError:
    return UpstreamError("JGI API error: 503 Service Unavailable", domain=domain.value, page=page, status_code=503)


@pytest.fixture
def storage_settings() -> StorageSettings:
    return StorageSettings(cache_provider="memory")


@pytest.fixture
def extraction_settings() -> ExtractionSettings:
    return ExtractionSettings(incremental_max_pages=3, full_max_pages=100)


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def data_store(object_store, cache, storage_settings) -> GenomeDataStore:
    return GenomeDataStore(object_store, cache, storage_settings)
