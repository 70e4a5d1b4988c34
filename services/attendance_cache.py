import json
import logging
import time
from typing import Optional

from services.kv_store import KeyValueStore
from services.models import AttendanceResponse

logger = logging.getLogger(__name__)

CACHE_PREFIX = "jobcan_attendance_"


def _now() -> float:
    """テスト時にモック可能"""
    return time.time()


def attendance_key(year: int, month: int) -> str:
    return f"{CACHE_PREFIX}{year}_{month}"


class AttendanceCache:
    """月ごとの勤怠一覧を書き込み時刻付きで保持する短期キャッシュ"""

    def __init__(self, store: KeyValueStore, ttl_minutes: float = 5):
        self._store = store
        self._ttl_seconds = ttl_minutes * 60

    async def get(self, year: int, month: int) -> Optional[AttendanceResponse]:
        key = attendance_key(year, month)
        raw = await self._store.get(key)
        if not raw:
            return None

        try:
            record = json.loads(raw)
            age = _now() - float(record["timestamp"])
            data = record["data"]
        except (ValueError, KeyError, TypeError):
            logger.debug("壊れたキャッシュを破棄します: %s", key)
            await self._store.delete(key)
            return None

        if age > self._ttl_seconds:
            await self._store.delete(key)
            return None

        return AttendanceResponse.from_dict(data)

    async def set(self, response: AttendanceResponse) -> None:
        record = {"data": response.to_dict(), "timestamp": _now()}
        await self._store.set(
            attendance_key(response.year, response.month),
            json.dumps(record, ensure_ascii=False),
        )

    async def remove(self, year: int, month: int) -> None:
        await self._store.delete(attendance_key(year, month))

    async def clear(self) -> None:
        for key in await self._store.items_with_prefix(CACHE_PREFIX):
            await self._store.delete(key)
