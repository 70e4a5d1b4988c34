import logging

from graph.state import ClockState

logger = logging.getLogger(__name__)


def failed_node(state: ClockState) -> dict:
    """どのステップで失敗したかを記録する終端ノード"""
    logger.warning(
        "%s の打刻が %s で失敗しました: %s",
        state["target_date"],
        state["step"],
        state["error"],
    )
    return {"step": "failed"}
