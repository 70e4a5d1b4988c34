from datetime import date

from graph.state import ClockState
from services.errors import JobcanError
from services.modify_page import fetch_modify_page


async def fetch_modify_page_node(state: ClockState, fetcher=None) -> dict:
    """対象日の打刻修正画面を取得し、トークン・ID・打刻場所・項目を取り出すノード"""
    target = date.fromisoformat(state["target_date"])
    try:
        page = await fetch_modify_page(fetcher, target)
    except JobcanError as e:
        return {"error": e, "step": "fetch_modify_page"}

    return {"page": page, "step": "fetch_modify_page"}
