import logging
from typing import Optional, Sequence

from graph.state import ClockState
from services.errors import ClockingUnsupportedError
from services.models import Spot

logger = logging.getLogger(__name__)


def match_spot(spots: Sequence[Spot], requested: Optional[str]) -> Optional[Spot]:
    """IDの完全一致、または名前の部分一致（大文字小文字無視・双方向）で打刻場所を探す"""
    if not requested:
        return None
    requested = requested.strip()

    for spot in spots:
        if spot.id == requested:
            return spot

    wanted = requested.lower()
    for spot in spots:
        name = spot.name.lower()
        if wanted in name or name in wanted:
            return spot
    return None


def resolve_spot_node(state: ClockState, strict: bool = False) -> dict:
    """入力された打刻場所（IDまたは名前）を内部IDに変換するノード"""
    spots = state["page"].available_spots
    requested = (state["field_values"].get("group_id") or "").strip()

    spot = match_spot(spots, requested)
    if spot is None:
        if requested and strict:
            return {
                "error": ClockingUnsupportedError(
                    [f"group_id ({requested})"],
                    hint="打刻場所の名前を確認してください。候補: "
                    + ", ".join(s.name for s in spots),
                ),
                "step": "resolve_spot",
            }
        spot = spots[0]
        if requested:
            logger.warning(
                "打刻場所 %r が見つからないため先頭の %r を使います", requested, spot.name
            )
        else:
            logger.info("打刻場所の指定がないため先頭の %r を使います", spot.name)

    return {"spot_id": spot.id, "step": "resolve_spot"}
