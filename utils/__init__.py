"""
Utils Module
通用工具函数
"""
from .logger import setup_logger
from .exceptions import (
    GenomePipelineError,
    ConfigurationError,
    UpstreamError,
    RecordParseError,
    StorageError,
    CacheError,
    PipelineBusyError,
)

__all__ = [
    "setup_logger",
    "GenomePipelineError",
    "ConfigurationError",
    "UpstreamError",
    "RecordParseError",
    "StorageError",
    "CacheError",
    "PipelineBusyError",
]
