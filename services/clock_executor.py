import logging
import re
from datetime import date
from typing import Sequence

from graph.graph import build_graph
from graph.state import ClockState
from services.clock_fields import (
    CLOCK_IN_FIELD,
    CLOCK_OUT_FIELD,
    DEFAULT_CLOCK_IN,
    DEFAULT_CLOCK_OUT,
)
from services.errors import ClockValueError, DateLockedError, JobcanError
from services.modify_page import fetch_modify_page
from services.models import AttendanceEntry, BulkClockResult, ModifyPageData

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def to_compact_time(value: str) -> str:
    """"9:05" → "0905" のように送信用の4桁へ変換する"""
    match = TIME_PATTERN.match((value or "").strip())
    if not match or int(match.group(1)) >= 24 or int(match.group(2)) >= 60:
        raise ClockValueError(f"時刻は HH:MM 形式で指定してください: {value!r}")
    return f"{int(match.group(1)):02d}{match.group(2)}"


class ClockExecutor:
    """1日分の出勤・退勤打刻を実行する"""

    def __init__(self, fetcher, config: dict = None):
        self._fetcher = fetcher
        self._graph = build_graph(fetcher=fetcher, config=config)
        self._locks: set[str] = set()

    async def fetch_modify_page(self, target: date) -> ModifyPageData:
        return await fetch_modify_page(self._fetcher, target)

    def _initial_state(self, target: date, values: dict) -> ClockState:
        notice = (values.get("notice") or "").strip()
        if not notice:
            raise ClockValueError("備考(notice)は必須です。", hint="備考を入力してから打刻してください。")

        return {
            "target_date": target.isoformat(),
            "field_values": {**values, "notice": notice},
            "clock_in_time": to_compact_time(values.get(CLOCK_IN_FIELD) or DEFAULT_CLOCK_IN),
            "clock_out_time": to_compact_time(values.get(CLOCK_OUT_FIELD) or DEFAULT_CLOCK_OUT),
            "page": None,
            "spot_id": None,
            "clock_in_done": False,
            "clock_out_done": False,
            "step": "start",
            "error": None,
        }

    async def clock_in_out(self, target: date, values: dict) -> ClockState:
        """出勤→退勤を打刻する。失敗時は分類済みの例外を送出する"""
        key = target.isoformat()
        if key in self._locks:
            raise DateLockedError(f"{key} の打刻はすでに処理中です。")

        # 入力値の不備はネットワークに出る前に弾く
        state = self._initial_state(target, values)

        self._locks.add(key)
        try:
            result = await self._graph.ainvoke(state)
        finally:
            self._locks.discard(key)

        if result.get("error") is not None:
            raise result["error"]

        logger.info("%s の出勤・退勤を打刻しました", key)
        return result

    async def submit_pending_days(
        self, entries: Sequence[AttendanceEntry], values: dict
    ) -> BulkClockResult:
        """複数日を1日ずつ順番に打刻する。失敗した日は記録して次へ進む"""
        result = BulkClockResult()
        for index, entry in enumerate(entries, start=1):
            logger.info("打刻中 %d/%d: %s(%s)", index, len(entries), entry.date, entry.day_of_week)
            try:
                await self.clock_in_out(date.fromisoformat(entry.date), values)
            except JobcanError as e:
                logger.warning("%s の打刻に失敗しました: %s", entry.date, e)
                result.failed[entry.date] = str(e)
            else:
                result.succeeded.append(entry.date)
        return result
