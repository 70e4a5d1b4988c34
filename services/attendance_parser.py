"""勤怠一覧（出勤簿）HTMLの解析

列構成: 日付, 休日区分, シフト, 出勤, 退勤, 労働時間, 時間外, 残業, 深夜, 休憩, 状態
"""
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from bs4 import BeautifulSoup, Tag

from services.models import (
    AttendanceEntry,
    AttendanceEntryRaw,
    AttendanceResponse,
    AttendanceStatus,
)

logger = logging.getLogger(__name__)

KNOWN_STATUS_CODES = frozenset({"A", "L", "PV", "SH"})
PENDING_ROW_CLASS = "jbc-table-warning"
MIN_CELLS = 11

DATE_PATTERN = re.compile(r"(\d{2})/(\d{2})\(([^)]+)\)")
STATUS_CODE_PATTERN = re.compile(r"^[A-Z]{1,3}$")
STATUS_TOKEN_PATTERN = re.compile(r"\b([A-Z]{1,3})\b")


def _today() -> str:
    """テスト時にモック可能"""
    return date.today().isoformat()


@dataclass(frozen=True)
class ParseAnomaly:
    """想定外の勤怠パターン。ログに出すだけで解析は止めない"""

    date: str
    reason: str
    status: tuple[str, ...]
    clock_in: Optional[str]
    clock_out: Optional[str]
    holiday_type: Optional[str]


def _cell_text(cell: Tag) -> Optional[str]:
    return cell.get_text(strip=True) or None


def _extract_status(cell: Tag) -> list[str]:
    """状態セルからステータスコードを取り出す（太字font → リンク → 本文の順）"""
    status: list[str] = []

    for font in cell.select('font[style*="font-weight: bold"]'):
        text = font.get_text(strip=True)
        if text and text not in status:
            status.append(text)
    if status:
        return status

    link = cell.find("a")
    if link is not None:
        link_font = link.find("font")
        if link_font is not None:
            text = link_font.get_text(strip=True)
        else:
            # fontタグが除去されたHTMLではリンク文字列そのものがコード
            text = link.get_text(strip=True)
            if not STATUS_CODE_PATTERN.match(text):
                text = ""
        if text:
            status.append(text)
    if status:
        return status

    for code in STATUS_TOKEN_PATTERN.findall(cell.get_text(" ", strip=True)):
        if code not in status:
            status.append(code)
    return status


def _detect_anomaly(raw: AttendanceEntryRaw) -> Optional[ParseAnomaly]:
    is_holiday_work = bool(raw.holiday_type and raw.clock_in and raw.clock_out and raw.working_hours)
    if is_holiday_work:
        return None

    has_clock_times = bool(raw.clock_in or raw.clock_out)
    unexpected = has_clock_times and ("A" in raw.status or "PV" in raw.status)
    unknown = any(code not in KNOWN_STATUS_CODES for code in raw.status)
    is_future = raw.date > _today()

    if unknown:
        reason = "unknown status code"
    elif unexpected and not is_future:
        reason = "unexpected data combination"
    else:
        return None

    return ParseAnomaly(
        date=raw.date,
        reason=reason,
        status=raw.status,
        clock_in=raw.clock_in,
        clock_out=raw.clock_out,
        holiday_type=raw.holiday_type,
    )


def parse_attendance_row(row: Tag, year: int, month: int) -> Optional[AttendanceEntryRaw]:
    """1行を解析する。対象外の行はNone"""
    cells = row.find_all("td", recursive=False)
    if len(cells) < MIN_CELLS:
        logger.debug("セル数が%d個のためスキップします（%d個必要）", len(cells), MIN_CELLS)
        return None

    date_link = cells[0].find("a")
    if date_link is None:
        logger.debug("日付リンクがない行をスキップします: %s", str(cells[0])[:100])
        return None

    date_text = date_link.get_text(strip=True)
    match = DATE_PATTERN.search(date_text)
    if not match:
        logger.debug("日付の形式が想定外です: %r", date_text)
        return None

    # 行には年がないため、年月はリクエストの値を使う
    day = int(match.group(2))
    entry_date = f"{year:04d}-{month:02d}-{day:02d}"

    status_cell = cells[10]
    tooltip = status_cell.find(attrs={"data-toggle": "tooltip"})

    raw = AttendanceEntryRaw(
        date=entry_date,
        day_of_week=match.group(3).strip(),
        holiday_type=_cell_text(cells[1]),
        shift_time=_cell_text(cells[2]),
        clock_in=_cell_text(cells[3]),
        clock_out=_cell_text(cells[4]),
        working_hours=_cell_text(cells[5]),
        off_shift_working_hours=_cell_text(cells[6]),
        overtime=_cell_text(cells[7]),
        night_shift=_cell_text(cells[8]),
        break_time=_cell_text(cells[9]),
        status=tuple(_extract_status(status_cell)),
        status_tooltip=(tooltip.get("title") or None) if tooltip is not None else None,
        is_pending=PENDING_ROW_CLASS in (row.get("class") or []),
    )

    anomaly = _detect_anomaly(raw)
    if anomaly is not None:
        logger.debug("想定外の勤怠パターン: %s", anomaly)

    return raw


def derive_status(raw: AttendanceEntryRaw) -> AttendanceStatus:
    is_logged = bool(raw.clock_in and raw.clock_out and raw.working_hours)
    is_holiday = bool(raw.holiday_type)

    if raw.is_pending:
        return AttendanceStatus.PENDING
    if is_holiday and is_logged:
        return AttendanceStatus.HOLIDAY_WORK
    if is_logged:
        return AttendanceStatus.LOGGED
    if "A" in raw.status:
        return AttendanceStatus.ABSENCE
    if "L" in raw.status:
        return AttendanceStatus.LATE
    if "PV" in raw.status:
        return AttendanceStatus.PAID_VACATION
    if "SH" in raw.status:
        return AttendanceStatus.SUBSTITUTION_HOLIDAY
    if is_holiday:
        return AttendanceStatus.HOLIDAY
    return AttendanceStatus.UNLOGGED


def to_attendance_entry(raw: AttendanceEntryRaw) -> AttendanceEntry:
    return AttendanceEntry(
        date=raw.date,
        day_of_week=raw.day_of_week,
        status=derive_status(raw),
        raw_status=raw.status,
        is_logged=bool(raw.clock_in and raw.clock_out and raw.working_hours),
        is_holiday=bool(raw.holiday_type),
        holiday_type=raw.holiday_type,
        shift_time=raw.shift_time,
        clock_in=raw.clock_in,
        clock_out=raw.clock_out,
        working_hours=raw.working_hours,
        off_shift_working_hours=raw.off_shift_working_hours,
        overtime=raw.overtime,
        night_shift=raw.night_shift,
        break_time=raw.break_time,
        status_tooltip=raw.status_tooltip,
    )


def parse_attendance_html(html: str, year: int, month: int) -> AttendanceResponse:
    """1か月分の勤怠一覧HTMLを日ごとのエントリに変換する"""
    soup = BeautifulSoup(html, "lxml")
    tbody = soup.find("tbody")
    if tbody is None:
        logger.debug("tbodyが見つかりません")
        return AttendanceResponse(entries=[], year=year, month=month)

    entries = []
    for row in tbody.find_all("tr", recursive=False):
        raw = parse_attendance_row(row, year, month)
        if raw is not None:
            entries.append(to_attendance_entry(raw))

    return AttendanceResponse(entries=entries, year=year, month=month)
