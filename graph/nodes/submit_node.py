from datetime import date

from graph.state import ClockState
from services.errors import ClockSubmissionError, JobcanError, PortalRequestError

SUCCESS_RESULT = "1"


async def _submit(state: ClockState, fetcher, step: str, compact_time: str) -> None:
    """打刻1件をPOSTする。失敗はClockSubmissionErrorで通知する"""
    page = state["page"]
    target = date.fromisoformat(state["target_date"])

    data = {
        "token": page.token,
        "year": str(target.year),
        "month": str(target.month),
        "day": str(target.day),
        "client_id": page.client_id,
        "employee_id": page.employee_id,
        "delete_minutes": "",
        "time": compact_time,
        "group_id": state["spot_id"],
        "notice": state["field_values"].get("notice", ""),
        "_": "",
    }

    try:
        response = await fetcher.post(
            f"{fetcher.app_base_url}/employee/adit/insert/",
            data=data,
            headers={"X-Requested-With": "XMLHttpRequest"},
        )
    except PortalRequestError as e:
        raise ClockSubmissionError(step, e.message) from e

    if not response.is_success:
        raise ClockSubmissionError(step, f"HTTP {response.status_code}")

    try:
        payload = response.json()
    except ValueError:
        raise ClockSubmissionError(step, f"JSONではない応答: {response.text[:100]}")

    result = payload.get("result") if isinstance(payload, dict) else None
    if str(result) != SUCCESS_RESULT:
        raise ClockSubmissionError(step, f"result={result}")


async def submit_clock_in_node(state: ClockState, fetcher=None) -> dict:
    """出勤打刻を送信するノード"""
    try:
        await _submit(state, fetcher, "in", state["clock_in_time"])
    except JobcanError as e:
        return {"error": e, "step": "submit_clock_in"}
    return {"clock_in_done": True, "step": "submit_clock_in"}


async def submit_clock_out_node(state: ClockState, fetcher=None) -> dict:
    """退勤打刻を送信するノード"""
    try:
        await _submit(state, fetcher, "out", state["clock_out_time"])
    except JobcanError as e:
        return {"error": e, "step": "submit_clock_out"}
    return {"clock_out_done": True, "step": "done"}
