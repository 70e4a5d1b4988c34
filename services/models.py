from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass
class Session:
    session_id: str
    cookie_string: str
    expires_at: datetime


@dataclass(frozen=True)
class AttendanceEntryRaw:
    """勤怠一覧の1日分（HTMLから取り出したままの値）"""

    date: str                                   # YYYY-MM-DD
    day_of_week: str                            # "Mon" など
    holiday_type: Optional[str] = None          # "National" など
    shift_time: Optional[str] = None            # "11:00～15:00"
    clock_in: Optional[str] = None
    clock_out: Optional[str] = None
    working_hours: Optional[str] = None
    off_shift_working_hours: Optional[str] = None
    overtime: Optional[str] = None
    night_shift: Optional[str] = None
    break_time: Optional[str] = None
    status: tuple[str, ...] = ()                # "A", "L", "PV", "SH" ...
    status_tooltip: Optional[str] = None
    is_pending: bool = False                    # 行に jbc-table-warning が付いている


class AttendanceStatus(str, Enum):
    PENDING = "pending"
    LOGGED = "logged"
    HOLIDAY_WORK = "holiday_work"
    ABSENCE = "absence"
    LATE = "late"
    PAID_VACATION = "paid_vacation"
    SUBSTITUTION_HOLIDAY = "substitution_holiday"
    HOLIDAY = "holiday"
    UNLOGGED = "unlogged"


@dataclass(frozen=True)
class AttendanceEntry:
    date: str
    day_of_week: str
    status: AttendanceStatus
    raw_status: tuple[str, ...]
    is_logged: bool
    is_holiday: bool
    holiday_type: Optional[str] = None
    shift_time: Optional[str] = None
    clock_in: Optional[str] = None
    clock_out: Optional[str] = None
    working_hours: Optional[str] = None
    off_shift_working_hours: Optional[str] = None
    overtime: Optional[str] = None
    night_shift: Optional[str] = None
    break_time: Optional[str] = None
    status_tooltip: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["raw_status"] = list(self.raw_status)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceEntry":
        values = dict(data)
        values["status"] = AttendanceStatus(values["status"])
        values["raw_status"] = tuple(values.get("raw_status") or ())
        return cls(**values)


@dataclass
class AttendanceResponse:
    entries: list[AttendanceEntry]
    year: int
    month: int

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "year": self.year,
            "month": self.month,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceResponse":
        return cls(
            entries=[AttendanceEntry.from_dict(e) for e in data.get("entries", [])],
            year=data["year"],
            month=data["month"],
        )


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str


@dataclass
class ClockField:
    """打刻修正フォームから検出した入力項目"""

    name: str
    type: str                                   # "select" / "text" / "time"
    required: bool
    label: str
    options: Optional[list[SelectOption]] = None
    default_value: Optional[str] = None


@dataclass(frozen=True)
class Spot:
    id: str
    name: str


@dataclass
class ModifyPageData:
    token: str
    client_id: str
    employee_id: str
    available_spots: list[Spot] = field(default_factory=list)
    form_fields: list[ClockField] = field(default_factory=list)


@dataclass
class BulkClockResult:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
