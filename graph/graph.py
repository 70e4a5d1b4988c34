# graph/graph.py
from langgraph.graph import StateGraph, END
from graph.state import ClockState


def _failed_or(state: ClockState, next_node: str) -> str:
    if state.get("error") is not None:
        return "failed"
    return next_node


def route_after_fetch(state: ClockState) -> str:
    return _failed_or(state, "validate")


def route_after_validate(state: ClockState) -> str:
    return _failed_or(state, "resolve_spot")


def route_after_resolve_spot(state: ClockState) -> str:
    return _failed_or(state, "submit_clock_in")


def route_after_clock_in(state: ClockState) -> str:
    return _failed_or(state, "submit_clock_out")


def route_after_clock_out(state: ClockState) -> str:
    return _failed_or(state, "end")


def build_graph(fetcher=None, config=None):
    """1日分の打刻（出勤→退勤）を行うLangGraphのグラフを構築して返す

    FetchModifyPage → Validate → ResolveSpot → SubmitClockIn → SubmitClockOut → END
    の順に進み、どのステップでもエラーが記録されれば failed ノードで終了する。
    サービス依存を持つノードは functools.partial でラップする。
    """
    from functools import partial
    from graph.nodes.fetch_modify_page_node import fetch_modify_page_node
    from graph.nodes.validate_node import validate_node
    from graph.nodes.resolve_spot_node import resolve_spot_node
    from graph.nodes.submit_node import submit_clock_in_node, submit_clock_out_node
    from graph.nodes.failed_node import failed_node

    strict = bool(config and config.get("clock", {}).get("strict_spot_match"))

    workflow = StateGraph(ClockState)

    workflow.add_node("fetch_modify_page", partial(fetch_modify_page_node, fetcher=fetcher))
    workflow.add_node("validate", validate_node)
    workflow.add_node("resolve_spot", partial(resolve_spot_node, strict=strict))
    workflow.add_node("submit_clock_in", partial(submit_clock_in_node, fetcher=fetcher))
    workflow.add_node("submit_clock_out", partial(submit_clock_out_node, fetcher=fetcher))
    workflow.add_node("failed", failed_node)

    workflow.set_entry_point("fetch_modify_page")

    workflow.add_conditional_edges(
        "fetch_modify_page",
        route_after_fetch,
        {"validate": "validate", "failed": "failed"},
    )
    workflow.add_conditional_edges(
        "validate",
        route_after_validate,
        {"resolve_spot": "resolve_spot", "failed": "failed"},
    )
    workflow.add_conditional_edges(
        "resolve_spot",
        route_after_resolve_spot,
        {"submit_clock_in": "submit_clock_in", "failed": "failed"},
    )
    workflow.add_conditional_edges(
        "submit_clock_in",
        route_after_clock_in,
        {"submit_clock_out": "submit_clock_out", "failed": "failed"},
    )
    workflow.add_conditional_edges(
        "submit_clock_out",
        route_after_clock_out,
        {"end": END, "failed": "failed"},
    )
    workflow.add_edge("failed", END)

    return workflow.compile()
