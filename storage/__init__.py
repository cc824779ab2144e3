"""
Storage Module
存储模块 - 对象存储、缓存与基因组数据布局
"""
from .object_store import (
    BaseObjectStore,
    MemoryObjectStore,
    FileSystemObjectStore,
    get_object_store,
)
from .cache import (
    BaseCache,
    MemoryCache,
    DiskCache,
    get_cache,
)
from .genome_store import GenomeDataStore

__all__ = [
    # Object Store
    "BaseObjectStore",
    "MemoryObjectStore",
    "FileSystemObjectStore",
    "get_object_store",
    # Cache
    "BaseCache",
    "MemoryCache",
    "DiskCache",
    "get_cache",
    "GenomeDataStore",
]
