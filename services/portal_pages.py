"""レスポンス本文がログイン画面か、ログイン後の画面かを判定する"""
from typing import Optional

LOGIN_PAGE_MARKERS = (
    'id="login-contents"',
    'action="/users/sign_in"',
)

AUTHENTICATED_PAGE_MARKERS = (
    "jbc-container",
    "Attendance Book",
    "JOBCAN MyPage",
)

LOGIN_URL_MARKERS = (
    "/users/sign_in",
    "/login/pc-employee-global",
)


def is_login_url(url: Optional[str]) -> bool:
    return bool(url) and any(marker in url for marker in LOGIN_URL_MARKERS)


def has_login_markers(html: str, url: Optional[str] = None) -> bool:
    if any(marker in html for marker in LOGIN_PAGE_MARKERS):
        return True
    if "/users/sign_in" in html and 'type="password"' in html:
        return True
    return is_login_url(url)


def has_authenticated_markers(html: str) -> bool:
    return any(marker in html for marker in AUTHENTICATED_PAGE_MARKERS)


def is_login_page(html: str, url: Optional[str] = None) -> bool:
    """ログイン画面の目印があり、かつログイン後画面の目印がない場合のみTrue

    ログイン後の画面にも "sign in" の文言が出ることがあるため、片方だけでは判定しない。
    """
    return has_login_markers(html, url) and not has_authenticated_markers(html)
