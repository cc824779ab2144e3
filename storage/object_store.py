"""
Object Store
按路径寻址的 blob 存储：get / put / list
"""
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Tuple
import logging
import os
import tempfile

from utils.exceptions import StorageError


logger = logging.getLogger(__name__)


class BaseObjectStore(ABC):
    """
    对象存储抽象基类
    content_type 仅作说明用途
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """读取对象，不存在返回 None"""
        pass

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        """整体写入对象 (原子替换)"""
        pass

    @abstractmethod
    def list(self, prefix: str = "") -> List[str]:
        """列出以 prefix 开头的键，按字典序"""
        pass

    @staticmethod
    def _check_key(key: str) -> str:
        text = str(key or "").strip().lstrip("/")
        if not text or ".." in text.split("/"):
            raise StorageError(f"invalid object key: {key!r}", key=key)
        return text


class MemoryObjectStore(BaseObjectStore):
    """
    内存对象存储
    适合开发和测试
    """

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[bytes]:
        key = self._check_key(key)
        with self._lock:
            entry = self._objects.get(key)
        return entry[0] if entry else None

    def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        key = self._check_key(key)
        with self._lock:
            self._objects[key] = (bytes(data), content_type)

    def list(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def content_type(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._objects.get(self._check_key(key))
        return entry[1] if entry else None


class FileSystemObjectStore(BaseObjectStore):
    """
    本地目录对象存储
    写入先落临时文件再 os.replace，读者不会看到写了一半的对象
    """

    def __init__(self, root: str = "./data/objects"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / self._check_key(key)

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"failed to read {key}: {e}", key=key) from e

    def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        path = self._path(key)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"failed to write {key}: {e}", key=key) from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug(f"[Storage] put {key} ({len(data)} bytes, {content_type})")

    def list(self, prefix: str = "") -> List[str]:
        keys = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)


def get_object_store(provider: str = "filesystem", root: str = "./data/objects") -> BaseObjectStore:
    """
    创建对象存储实例

    Args:
        provider: filesystem, memory
        root: 文件系统根目录
    """
    if provider == "memory":
        return MemoryObjectStore()
    if provider == "filesystem":
        return FileSystemObjectStore(root=root)
    raise ValueError(f"Unknown object store provider: {provider}")
