"""
Cache
带 TTL 的临时键值缓存 (仅作加速，不作为数据来源)
"""
from abc import ABC, abstractmethod
from typing import Any, Optional, Dict
from pathlib import Path
from datetime import datetime, timedelta
from threading import Lock
import json
import hashlib
import logging

from utils.exceptions import CacheError


logger = logging.getLogger(__name__)


class BaseCache(ABC):
    """
    缓存抽象基类
    """

    def __init__(self, ttl: Optional[int] = None):
        """
        初始化缓存

        Args:
            ttl: 默认过期时间 (秒), None = 永不过期
        """
        self.ttl = ttl

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """获取缓存值，不存在或已过期返回 None"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """设置缓存值"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """删除缓存"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """清空缓存"""
        pass

    def exists(self, key: str) -> bool:
        """检查键是否存在"""
        return self.get(key) is not None

    def _expires_at(self, ttl: Optional[int]) -> Optional[datetime]:
        ttl = ttl or self.ttl
        if not ttl:
            return None
        return datetime.now() + timedelta(seconds=ttl)


class MemoryCache(BaseCache):
    """
    内存缓存
    简单的字典缓存，适合开发和测试
    """

    def __init__(self, ttl: Optional[int] = None, max_size: int = 1000):
        """
        初始化内存缓存

        Args:
            ttl: 默认过期时间 (秒)
            max_size: 最大缓存条目数
        """
        super().__init__(ttl)
        self.max_size = max_size
        self._cache: Dict[str, Dict] = {}
        self._lock = Lock()

    def _is_expired(self, entry: Dict) -> bool:
        if entry.get("expires_at") is None:
            return False
        return datetime.now() > entry["expires_at"]

    def _cleanup(self):
        """清理过期条目，仍超限时删除最旧的"""
        expired_keys = [k for k, v in self._cache.items() if self._is_expired(v)]
        for key in expired_keys:
            del self._cache[key]

        if len(self._cache) >= self.max_size:
            sorted_keys = sorted(
                self._cache.keys(),
                key=lambda k: self._cache[k].get("created_at", datetime.min),
            )
            for key in sorted_keys[:len(self._cache) - self.max_size + 1]:
                del self._cache[key]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._cache[key]
                return None
            return entry["value"]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            if key not in self._cache:
                self._cleanup()
            self._cache[key] = {
                "value": value,
                "created_at": datetime.now(),
                "expires_at": self._expires_at(ttl),
            }

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


class DiskCache(BaseCache):
    """
    磁盘缓存 (JSON)
    跨进程保留，适合命令行多次调用之间共享 last_extraction 等键
    """

    def __init__(self, cache_dir: str = "./data/cache", ttl: Optional[int] = None):
        """
        初始化磁盘缓存

        Args:
            cache_dir: 缓存目录
            ttl: 默认过期时间 (秒)
        """
        super().__init__(ttl)
        self.cache_dir = Path(cache_dir)
        self.meta_file = self.cache_dir / "_meta.json"
        self._lock = Lock()
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"cannot create cache dir {cache_dir}: {e}") from e
        self._meta: Dict[str, Dict] = self._load_meta()

    def _load_meta(self) -> Dict[str, Dict]:
        if not self.meta_file.exists():
            return {}
        try:
            with open(self.meta_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cache metadata unreadable, starting empty: {e}")
            return {}

    def _save_meta(self):
        try:
            with open(self.meta_file, "w", encoding="utf-8") as f:
                json.dump(self._meta, f)
        except OSError as e:
            raise CacheError(f"failed to save cache metadata: {e}") from e

    def _get_path(self, key: str) -> Path:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _is_expired(self, key: str) -> bool:
        expires_at = self._meta.get(key, {}).get("expires_at")
        if expires_at is None:
            return False
        return datetime.now().timestamp() > expires_at

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            path = self._get_path(key)
            if not path.exists():
                return None
            if self._is_expired(key):
                self._delete_unlocked(key)
                return None
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise CacheError(f"failed to load cache {key}: {e}") from e

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._expires_at(ttl)
            try:
                with open(self._get_path(key), "w", encoding="utf-8") as f:
                    json.dump(value, f, ensure_ascii=False, default=str)
            except (OSError, TypeError) as e:
                raise CacheError(f"failed to save cache {key}: {e}") from e

            self._meta[key] = {
                "created_at": datetime.now().timestamp(),
                "expires_at": expires_at.timestamp() if expires_at else None,
            }
            self._save_meta()

    def _delete_unlocked(self, key: str) -> None:
        path = self._get_path(key)
        if path.exists():
            path.unlink()
        self._meta.pop(key, None)
        self._save_meta()

    def delete(self, key: str) -> None:
        with self._lock:
            self._delete_unlocked(key)

    def clear(self) -> None:
        with self._lock:
            for path in self.cache_dir.glob("*.json"):
                path.unlink()
            self._meta = {}
            self._save_meta()

    def size(self) -> int:
        with self._lock:
            return len(self._meta)


def get_cache(
    provider: str = "memory",
    cache_dir: str = "./data/cache",
    ttl: Optional[int] = None,
    **kwargs,
) -> BaseCache:
    """
    创建缓存实例 (每次调用返回新实例，由调用方注入到各组件)

    Args:
        provider: 提供商 (memory, disk)
        cache_dir: 磁盘缓存目录
        ttl: 默认过期时间
    """
    if provider == "memory":
        return MemoryCache(ttl=ttl, **kwargs)
    if provider == "disk":
        return DiskCache(cache_dir=cache_dir, ttl=ttl)
    raise ValueError(f"Unknown cache provider: {provider}")
