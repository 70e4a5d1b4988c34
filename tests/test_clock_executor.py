import asyncio
import logging
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from graph.nodes.resolve_spot_node import match_spot, resolve_spot_node
from services.clock_executor import ClockExecutor, to_compact_time
from services.errors import (
    ClockSubmissionError,
    ClockValueError,
    ClockingUnsupportedError,
    DateLockedError,
    PortalRequestError,
)
from services.models import AttendanceEntry, AttendanceStatus, ModifyPageData, Spot

APP = "https://ssl.jobcan.jp"
SPOTS = [Spot(id="10", name="Tokyo Office"), Spot(id="20", name="Remote")]


def _json_response(payload, status_code=200):
    return httpx.Response(status_code, json=payload, request=httpx.Request("POST", APP))


def _fetcher(modify_html, post_results=None):
    """修正画面のHTMLと打刻結果を順に返すフェッチャーのモック"""
    fetcher = MagicMock()
    fetcher.app_base_url = APP
    fetcher.get = AsyncMock(
        return_value=httpx.Response(200, text=modify_html, request=httpx.Request("GET", APP))
    )
    results = post_results or [{"result": 1}, {"result": 1}]
    fetcher.post = AsyncMock(side_effect=[_json_response(r) for r in results])
    return fetcher


def _absence(day):
    return AttendanceEntry(
        date=day,
        day_of_week="Thu",
        status=AttendanceStatus.ABSENCE,
        raw_status=("A",),
        is_logged=False,
        is_holiday=False,
    )


def test_to_compact_time():
    """HH:MM を4桁に変換すること"""
    assert to_compact_time("09:05") == "0905"
    assert to_compact_time("9:05") == "0905"
    assert to_compact_time(" 19:00 ") == "1900"


@pytest.mark.parametrize("value", ["", "0905", "9:5", "10:60", "24:00", "25:00", "ab:cd", None])
def test_to_compact_time_invalid(value):
    """不正な時刻はClockValueErrorになること"""
    with pytest.raises(ClockValueError):
        to_compact_time(value)


@pytest.mark.asyncio
async def test_clock_in_out_success(read_fixture):
    """出勤→退勤の順に送信し、送信内容が正しいこと"""
    fetcher = _fetcher(read_fixture("modify_page.html"))
    executor = ClockExecutor(fetcher)

    state = await executor.clock_in_out(
        date(2026, 4, 2),
        {"notice": "在宅勤務", "group_id": "Remote", "clockInTime": "9:30", "clockOutTime": "18:45"},
    )

    assert state["clock_in_done"] is True
    assert state["clock_out_done"] is True
    assert state["step"] == "done"
    assert state["spot_id"] == "20"

    fetcher.get.assert_awaited_once_with(
        f"{APP}/employee/adit/modify", params={"year": "2026", "month": "4", "day": "2"}
    )
    assert fetcher.post.await_count == 2
    clock_in_call, clock_out_call = fetcher.post.await_args_list
    assert clock_in_call.args[0] == f"{APP}/employee/adit/insert/"
    assert clock_in_call.kwargs["data"] == {
        "token": "tok-123",
        "year": "2026",
        "month": "4",
        "day": "2",
        "client_id": "cl-1",
        "employee_id": "emp-42",
        "delete_minutes": "",
        "time": "0930",
        "group_id": "20",
        "notice": "在宅勤務",
        "_": "",
    }
    assert clock_in_call.kwargs["headers"] == {"X-Requested-With": "XMLHttpRequest"}
    assert clock_out_call.kwargs["data"]["time"] == "1845"


@pytest.mark.asyncio
async def test_default_times(read_fixture):
    """時刻の指定がなければ10:00と19:00で送信すること"""
    fetcher = _fetcher(read_fixture("modify_page.html"))
    await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "通常勤務"})

    times = [c.kwargs["data"]["time"] for c in fetcher.post.await_args_list]
    assert times == ["1000", "1900"]


@pytest.mark.asyncio
async def test_clock_in_rejected_stops_before_clock_out(read_fixture):
    """出勤がresult=0なら退勤は送らずClockSubmissionError(in)になること"""
    fetcher = _fetcher(read_fixture("modify_page.html"), post_results=[{"result": 0}])
    executor = ClockExecutor(fetcher)

    with pytest.raises(ClockSubmissionError) as exc_info:
        await executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})

    assert exc_info.value.step == "in"
    assert fetcher.post.await_count == 1


@pytest.mark.asyncio
async def test_clock_out_rejected(read_fixture):
    """退勤が拒否されたらClockSubmissionError(out)になること"""
    fetcher = _fetcher(
        read_fixture("modify_page.html"), post_results=[{"result": 1}, {"result": 0}]
    )
    with pytest.raises(ClockSubmissionError) as exc_info:
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    assert exc_info.value.step == "out"


@pytest.mark.asyncio
async def test_non_json_response(read_fixture):
    """JSONでない応答は失敗として扱うこと"""
    fetcher = _fetcher(read_fixture("modify_page.html"))
    fetcher.post = AsyncMock(
        return_value=httpx.Response(200, text="<html>error</html>", request=httpx.Request("POST", APP))
    )
    with pytest.raises(ClockSubmissionError) as exc_info:
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    assert exc_info.value.step == "in"


@pytest.mark.asyncio
async def test_http_error_on_submit(read_fixture):
    """HTTPエラーは失敗として扱うこと"""
    fetcher = _fetcher(read_fixture("modify_page.html"))
    fetcher.post = AsyncMock(return_value=_json_response({"result": 1}, status_code=500))
    with pytest.raises(ClockSubmissionError):
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})


@pytest.mark.asyncio
async def test_missing_token_is_unsupported():
    """トークンがない画面ではPOSTせずClockingUnsupportedErrorになること"""
    html = '<select name="group_id"><option value="10">Tokyo Office</option></select>'
    fetcher = _fetcher(html)

    with pytest.raises(ClockingUnsupportedError) as exc_info:
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})

    assert exc_info.value.missing == ["token", "client_id", "employee_id"]
    fetcher.post.assert_not_called()


@pytest.mark.asyncio
async def test_modify_page_fetch_error():
    """修正画面の取得に失敗したらその例外が伝わること"""
    fetcher = _fetcher("")
    fetcher.get = AsyncMock(
        return_value=httpx.Response(500, text="", request=httpx.Request("GET", APP))
    )
    with pytest.raises(PortalRequestError):
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    fetcher.post.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("notice", ["", "   ", None])
async def test_empty_notice_rejected_without_network(notice):
    """備考が空ならネットワークに出る前にClockValueErrorになること"""
    fetcher = _fetcher("")
    with pytest.raises(ClockValueError):
        await ClockExecutor(fetcher).clock_in_out(date(2026, 4, 2), {"notice": notice})
    fetcher.get.assert_not_called()
    fetcher.post.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "times",
    [{"clockInTime": "25"}, {"clockOutTime": "25:00"}, {"clockInTime": "24:30"}],
)
async def test_bad_time_rejected_without_network(times):
    """時刻が不正（24時以降を含む）ならネットワークに出る前に失敗すること"""
    fetcher = _fetcher("")
    with pytest.raises(ClockValueError):
        await ClockExecutor(fetcher).clock_in_out(
            date(2026, 4, 2), {"notice": "在宅勤務", **times}
        )
    fetcher.get.assert_not_called()
    fetcher.post.assert_not_called()


@pytest.mark.asyncio
async def test_same_date_is_locked(read_fixture):
    """同じ日付の打刻が処理中ならDateLockedErrorになり、終わればロックが外れること"""
    fetcher = _fetcher(read_fixture("modify_page.html"), post_results=[{"result": 1}] * 4)
    executor = ClockExecutor(fetcher)
    started = asyncio.Event()
    release = asyncio.Event()
    original_get = fetcher.get.return_value

    async def slow_get(url, params=None):
        started.set()
        await release.wait()
        return original_get

    fetcher.get = AsyncMock(side_effect=slow_get)

    first = asyncio.create_task(executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"}))
    await started.wait()
    with pytest.raises(DateLockedError):
        await executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    release.set()
    await first

    await executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    assert fetcher.post.await_count == 4


@pytest.mark.asyncio
async def test_lock_released_after_failure(read_fixture):
    """失敗してもロックが残らないこと"""
    fetcher = _fetcher(
        read_fixture("modify_page.html"), post_results=[{"result": 0}, {"result": 1}, {"result": 1}]
    )
    executor = ClockExecutor(fetcher)
    with pytest.raises(ClockSubmissionError):
        await executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})
    await executor.clock_in_out(date(2026, 4, 2), {"notice": "在宅勤務"})


@pytest.mark.asyncio
async def test_submit_pending_days_isolates_failures(read_fixture):
    """1日ずつ順番に打刻し、失敗した日だけ記録して続行すること"""
    fetcher = _fetcher(
        read_fixture("modify_page.html"),
        post_results=[{"result": 1}, {"result": 1}, {"result": 0}, {"result": 1}, {"result": 1}],
    )
    executor = ClockExecutor(fetcher)

    result = await executor.submit_pending_days(
        [_absence("2026-04-01"), _absence("2026-04-02"), _absence("2026-04-03")],
        {"notice": "在宅勤務", "group_id": "10"},
    )

    assert result.succeeded == ["2026-04-01", "2026-04-03"]
    assert list(result.failed) == ["2026-04-02"]
    assert "出勤打刻(in)" in result.failed["2026-04-02"]
    days = [c.kwargs["params"]["day"] for c in fetcher.get.await_args_list]
    assert days == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_fetch_modify_page(read_fixture):
    """修正画面を取得して解析すること"""
    fetcher = _fetcher(read_fixture("modify_page.html"))
    page = await ClockExecutor(fetcher).fetch_modify_page(date(2026, 4, 2))
    assert page.token == "tok-123"
    assert [s.id for s in page.available_spots] == ["10", "20"]


def test_match_spot():
    """ID完全一致→名前の部分一致（双方向・大文字小文字無視）の順で探すこと"""
    assert match_spot(SPOTS, "20").name == "Remote"
    assert match_spot(SPOTS, "tokyo").id == "10"
    assert match_spot(SPOTS, "REMOTE work").id == "20"
    assert match_spot(SPOTS, "Osaka") is None
    assert match_spot(SPOTS, "") is None


def _spot_state(group_id=None):
    page = ModifyPageData(token="t", client_id="c", employee_id="e", available_spots=SPOTS)
    values = {"notice": "x"}
    if group_id is not None:
        values["group_id"] = group_id
    return {"page": page, "field_values": values}


def test_resolve_spot_defaults_to_first():
    """指定がなければ先頭の打刻場所を使うこと"""
    assert resolve_spot_node(_spot_state())["spot_id"] == "10"


def test_resolve_spot_unmatched_warns(caplog):
    """一致しない名前は警告を出して先頭の打刻場所を使うこと"""
    caplog.set_level(logging.WARNING, logger="graph.nodes.resolve_spot_node")
    result = resolve_spot_node(_spot_state("Osaka"))
    assert result["spot_id"] == "10"
    assert "Osaka" in caplog.text


def test_resolve_spot_unmatched_strict():
    """厳密モードでは一致しない名前はエラーになること"""
    result = resolve_spot_node(_spot_state("Osaka"), strict=True)
    assert isinstance(result["error"], ClockingUnsupportedError)
    assert "spot_id" not in result
