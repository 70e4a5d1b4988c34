import copy
from datetime import datetime
from pathlib import Path

import httpx
import pytest

from services.config_loader import DEFAULT_CONFIG

FIXTURES_DIR = Path(__file__).parent / "fixtures"

NOW = datetime(2026, 4, 15, 12, 0, 0)

EMPLOYEE_HTML = '<html><body><div class="jbc-container">JOBCAN MyPage</div></body></html>'


def respond(status_code: int = 200, text: str = "", headers=None, json=None):
    """呼ばれるたびに新しいResponseを返すレスポンダ"""
    def _responder(request: httpx.Request) -> httpx.Response:
        if json is not None:
            return httpx.Response(status_code, json=json, headers=headers)
        return httpx.Response(status_code, text=text, headers=headers)
    return _responder


def sequence(*responders):
    """呼ばれた順にレスポンダを切り替える（最後のものは繰り返す）"""
    remaining = list(responders)

    def _responder(request: httpx.Request) -> httpx.Response:
        current = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return current(request)
    return _responder


class FakePortal:
    """Jobcanのエンドポイントを (メソッド, パス) 単位で差し替えられるスタブ"""

    def __init__(self, sign_in_html: str):
        self.requests: list[httpx.Request] = []
        self.routes = {
            ("GET", "/users/sign_in"): respond(
                200, sign_in_html, headers=[("set-cookie", "_jbc_id=abc; path=/")]
            ),
            ("POST", "/users/sign_in"): respond(
                302,
                headers=[
                    ("location", "https://id.jobcan.jp/"),
                    ("set-cookie", "remember=1; path=/"),
                ],
            ),
            ("GET", "/oauth/authorize"): respond(
                302,
                headers=[("location", "https://ssl.jobcan.jp/jbcoauth/callback?code=CODE1")],
            ),
            ("GET", "/jbcoauth/callback"): respond(
                302,
                headers=[
                    ("location", "/employee"),
                    ("set-cookie", "sid=SID1; path=/; HttpOnly"),
                ],
            ),
            ("GET", "/employee"): respond(200, EMPLOYEE_HTML),
        }

    def route(self, method: str, path: str, responder) -> None:
        self.routes[(method, path)] = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, text="not found")
        return responder(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if (r.method, r.url.path) == (method, path)]


@pytest.fixture
def read_fixture():
    """tests/fixtures 配下のHTMLを文字列で返す"""
    def _read(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")
    return _read


@pytest.fixture
def config():
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def portal(read_fixture):
    return FakePortal(read_fixture("sign_in.html"))
