"""
Extraction Module
抽取模块 - 多域分页抓取
"""
from .extractor import GenomeExtractor, PageSource, DOMAINS, new_run_id

__all__ = [
    "GenomeExtractor",
    "PageSource",
    "DOMAINS",
    "new_run_id",
]
