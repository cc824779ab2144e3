"""
Custom Exceptions
流水线异常分类
"""
from typing import Optional


class GenomePipelineError(Exception):
    """基因组流水线基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(GenomePipelineError):
    """配置/参数错误 (编程错误，不重试)"""
    pass


class UpstreamError(GenomePipelineError):
    """上游门户返回非成功状态或无法解码的响应"""

    def __init__(
        self,
        message: str,
        domain: Optional[str] = None,
        page: Optional[int] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, kwargs)
        self.domain = domain
        self.page = page
        self.status_code = status_code


class RecordParseError(GenomePipelineError):
    """单条记录格式错误"""

    def __init__(self, message: str, record_id: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.record_id = record_id


class StorageError(GenomePipelineError):
    """持久化存储错误"""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.key = key


class CacheError(StorageError):
    """缓存错误"""
    pass


class PipelineBusyError(GenomePipelineError):
    """已有运行中的流水线"""

    def __init__(self, message: str, active_run_id: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.active_run_id = active_run_id
