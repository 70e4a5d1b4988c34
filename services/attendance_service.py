import asyncio
import calendar
import logging
from datetime import date
from typing import Optional

from services.attendance_cache import AttendanceCache
from services.attendance_parser import parse_attendance_html
from services.errors import PortalRequestError
from services.fetcher import AuthenticatedFetcher
from services.models import AttendanceResponse

logger = logging.getLogger(__name__)


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def attendance_params(year: int, month: int) -> dict:
    """月初〜月末を指定する出勤簿の検索パラメータ"""
    last_day = calendar.monthrange(year, month)[1]
    return {
        "list_type": "normal",
        "search_type": "month",
        "month": str(month),
        "year": str(year),
        "from[m]": str(month),
        "from[d]": "1",
        "from[y]": str(year),
        "to[m]": str(month),
        "to[d]": str(last_day),
        "to[y]": str(year),
    }


class AttendanceService:
    """出勤簿の取得（キャッシュ付き）"""

    def __init__(self, fetcher: AuthenticatedFetcher, cache: Optional[AttendanceCache] = None):
        self._fetcher = fetcher
        self._cache = cache

    async def get_attendance(self, year: int, month: int) -> AttendanceResponse:
        """指定月の勤怠一覧をポータルから取得する（キャッシュは見ない）"""
        url = f"{self._fetcher.app_base_url}/employee/attendance"
        response = await self._fetcher.get(url, params=attendance_params(year, month))
        if not response.is_success:
            raise PortalRequestError(
                f"勤怠一覧の取得に失敗しました（HTTP {response.status_code}）: {response.text[:200]}"
            )

        result = parse_attendance_html(response.text, year, month)
        if self._cache is not None:
            await self._cache.set(result)
        return result

    async def get_cached_or_fetch(self, year: int, month: int) -> AttendanceResponse:
        if self._cache is not None:
            cached = await self._cache.get(year, month)
            if cached is not None and cached.entries:
                return cached
        return await self.get_attendance(year, month)

    async def get_recent_attendance(self, today: date = None) -> list:
        """前月と当月の勤怠を並行して取得し、前月→当月の順に連結して返す"""
        if today is None:
            today = date.today()
        prev_year, prev_month = previous_month(today.year, today.month)

        previous, current = await asyncio.gather(
            self.get_cached_or_fetch(prev_year, prev_month),
            self.get_cached_or_fetch(today.year, today.month),
        )
        return [*previous.entries, *current.entries]

    async def invalidate(self, year: int, month: int) -> None:
        if self._cache is not None:
            await self._cache.remove(year, month)
