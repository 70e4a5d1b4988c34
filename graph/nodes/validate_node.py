from graph.state import ClockState
from services.errors import ClockingUnsupportedError


def validate_node(state: ClockState) -> dict:
    """送信前に必要なデータが揃っているか確認するノード（不足はすべて列挙する）"""
    page = state["page"]

    missing = []
    if not page.token:
        missing.append("token")
    if not page.client_id:
        missing.append("client_id")
    if not page.employee_id:
        missing.append("employee_id")
    if not page.available_spots:
        missing.append("available_spots")

    if missing:
        return {"error": ClockingUnsupportedError(missing), "step": "validate"}
    return {"step": "validate"}
