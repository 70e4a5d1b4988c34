from typing import TypedDict, Optional

from services.models import ModifyPageData


class ClockState(TypedDict):
    target_date: str                    # YYYY-MM-DD
    field_values: dict                  # notice / group_id / clockInTime / clockOutTime ...
    clock_in_time: str                  # HHMM（送信用の4桁）
    clock_out_time: str                 # HHMM
    page: Optional[ModifyPageData]      # 修正画面のスナップショット
    spot_id: Optional[str]              # 解決済みの打刻場所ID
    clock_in_done: bool
    clock_out_done: bool
    step: str                           # 最後に完了したステップ / "done" / "failed"
    error: Optional[Exception]          # 失敗時の分類済み例外
