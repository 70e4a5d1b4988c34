import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class KeyValueStore(ABC):
    """セッション・キャッシュ・記憶値を保存するキーバリューストアの抽象インターフェース"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def items_with_prefix(self, prefix: str) -> dict[str, str]:
        """指定プレフィックスで始まるキーと値を返す"""
        ...


class MemoryStore(KeyValueStore):
    """プロセス内だけで完結するストア（テスト用）"""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def items_with_prefix(self, prefix: str) -> dict[str, str]:
        return {k: v for k, v in self._data.items() if k.startswith(prefix)}


class JsonFileStore(KeyValueStore):
    """JSONファイルに永続化するストア"""

    def __init__(self, path: str):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            return json.load(f) or {}

    def _dump(self, data: dict[str, str]):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self._path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)

    async def items_with_prefix(self, prefix: str) -> dict[str, str]:
        async with self._lock:
            return {k: v for k, v in self._load().items() if k.startswith(prefix)}
