"""Cookieベースのセッション管理

ログインはOAuthの画面遷移をHTTPだけで再現する:

1. サインイン画面からauthenticity_tokenを取得
2. 認証情報をPOST（リダイレクトは追わない）
3. /oauth/authorize のLocationから認可コードを取得
4. コールバックでセッションCookie(sid)を受け取る
5. 残りのリダイレクトを最大5回たどり、Cookieを更新しながら200に到達するまで進む

得られたCookie一式を有効期限付きでストアに保存し、以降のリクエストで使い回す。
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from services.attendance_cache import AttendanceCache
from services.cookies import (
    BASELINE_COOKIES,
    SESSION_COOKIE_NAME,
    extract_session_id,
    format_cookie_header,
    merge_cookie_header_map,
    merge_cookie_map,
    merge_cookies,
)
from services.errors import (
    AuthCredentialsError,
    AuthParseError,
    AuthProtocolError,
    PortalRequestError,
    SessionExpiredError,
    SessionMissingError,
)
from services.kv_store import KeyValueStore
from services.models import Session
from services.portal_pages import has_authenticated_markers, is_login_page, is_login_url
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)


def _now() -> datetime:
    """テスト時にモック可能な現在時刻取得"""
    return datetime.now()


def base_headers(user_agent: str, cookies: str = "", referer: Optional[str] = None) -> dict:
    """ブラウザ相当の共通ヘッダ"""
    headers = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "User-Agent": user_agent,
    }
    if cookies:
        headers["Cookie"] = cookies
    if referer:
        headers["Referer"] = referer
    return headers


def extract_authenticity_token(html: str) -> Optional[str]:
    """サインイン画面からCSRFトークンを取り出す（input優先、なければmeta）"""
    soup = BeautifulSoup(html, "lxml")

    token_input = soup.find("input", attrs={"name": "authenticity_token"})
    if token_input and token_input.get("value"):
        return token_input["value"]

    meta = soup.find("meta", attrs={"name": "csrf-token"})
    if meta and meta.get("content"):
        return meta["content"]

    return None


def extract_authorization_code(location: Optional[str]) -> Optional[str]:
    if not location:
        return None
    codes = parse_qs(urlparse(location).query).get("code")
    return codes[0] if codes else None


def _short(session_id: str) -> str:
    return f"{session_id[:10]}..."


class SessionManager:
    """Jobcanのセッションを発行・検証・更新する"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: KeyValueStore,
        config: dict,
        email: str = "",
        password: str = "",
        cache: Optional[AttendanceCache] = None,
    ):
        portal = config["portal"]
        session_config = config["session"]

        self._client = client
        self._session_store = SessionStore(store)
        self._cache = cache
        self._email = email
        self._password = password

        self._id_base_url = portal["id_base_url"].rstrip("/")
        self._app_base_url = portal["app_base_url"].rstrip("/")
        self._client_id = portal["client_id"]
        self._sign_in_url = f"{self._id_base_url}{portal['sign_in_path']}"
        self._redirect_uri = f"{self._app_base_url}{portal['callback_path']}"
        self._user_agent = portal["user_agent"]

        self._lifetime = timedelta(hours=session_config["lifetime_hours"])
        self._buffer = timedelta(minutes=session_config["expiry_buffer_minutes"])
        self._auto_relogin = session_config["auto_relogin"]
        self._max_redirects = session_config["max_redirects"]

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def app_base_url(self) -> str:
        return self._app_base_url

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        kwargs.setdefault("follow_redirects", False)
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PortalRequestError(f"{method} {url} の通信に失敗しました: {e}") from e

    async def login(self, email: str, password: str) -> str:
        """メールアドレスとパスワードでログインし、セッションIDを返す"""
        logger.debug("ログインを開始します")

        # 1. CSRFトークン
        page = await self._send(
            "GET", self._sign_in_url, headers=base_headers(self._user_agent), follow_redirects=True
        )
        if not page.is_success:
            raise AuthProtocolError(f"ログインページの取得に失敗しました（HTTP {page.status_code}）")

        token = extract_authenticity_token(page.text)
        if not token:
            raise AuthParseError("ログインページからauthenticity_tokenを取得できませんでした。")

        jar = merge_cookie_map(page.headers.get_list("set-cookie"))

        # 2. 認証情報のPOST
        login_response = await self._send(
            "POST",
            self._sign_in_url,
            data={
                "authenticity_token": token,
                "user[email]": email,
                "user[client_code]": "",
                "user[password]": password,
                "redirect_uri": self._redirect_uri,
                "app_key": "atd",
                "commit": "Login",
            },
            headers={
                **base_headers(self._user_agent, format_cookie_header(jar), self._sign_in_url),
                "Origin": self._id_base_url,
            },
        )
        if login_response.status_code not in (200, 302):
            logger.debug("ログインPOSTが失敗しました: %s", login_response.status_code)
            raise AuthCredentialsError(
                f"ログインに失敗しました（HTTP {login_response.status_code}）。"
            )
        jar = merge_cookie_map(login_response.headers.get_list("set-cookie"), jar)

        # 3. 認可コード
        authorize_response = await self._send(
            "GET",
            f"{self._id_base_url}/oauth/authorize",
            params={
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "response_type": "code",
                "scope": "read",
            },
            headers=base_headers(self._user_agent, format_cookie_header(jar), self._sign_in_url),
        )
        location = authorize_response.headers.get("location")
        if not location:
            raise AuthProtocolError("認可エンドポイントからリダイレクト先が返りませんでした。")
        code = extract_authorization_code(location)
        if not code:
            raise AuthProtocolError(f"リダイレクト先に認可コードがありません: {location}")
        jar = merge_cookie_map(authorize_response.headers.get_list("set-cookie"), jar)

        # 4. コールバックでsidを受け取る
        callback_response = await self._send(
            "GET",
            self._redirect_uri,
            params={"code": code},
            headers=base_headers(self._user_agent, format_cookie_header(jar), self._id_base_url),
        )
        callback_cookies = callback_response.headers.get_list("set-cookie")
        jar = merge_cookie_map(callback_cookies, jar)
        session_id = extract_session_id(callback_cookies) or jar.get(SESSION_COOKIE_NAME)
        if not session_id:
            raise AuthParseError("コールバックのレスポンスからセッションCookieを取得できませんでした。")

        # 5. 残りのリダイレクトをたどる
        callback_location = callback_response.headers.get("location")
        if callback_location:
            jar = merge_cookie_header_map([BASELINE_COOKIES], jar)
            jar.setdefault(SESSION_COOKIE_NAME, session_id)
            jar, session_id = await self._follow_redirects(
                urljoin(str(callback_response.url), callback_location),
                str(callback_response.url),
                jar,
                session_id,
            )

        await self._session_store.write(
            Session(
                session_id=session_id,
                cookie_string=format_cookie_header(jar),
                expires_at=_now() + self._lifetime,
            )
        )
        logger.info("ログインしました (sid: %s)", _short(session_id))
        return session_id

    async def _follow_redirects(
        self, url: str, referer: str, jar: dict[str, str], session_id: str
    ) -> tuple[dict[str, str], str]:
        current_url = url
        for hop in range(self._max_redirects):
            response = await self._send(
                "GET",
                current_url,
                headers=base_headers(
                    self._user_agent,
                    format_cookie_header(jar),
                    referer if hop == 0 else current_url,
                ),
            )

            set_cookies = response.headers.get_list("set-cookie")
            jar = merge_cookie_map(set_cookies, jar)
            new_session_id = extract_session_id(set_cookies)
            if new_session_id:
                session_id = new_session_id

            if response.status_code == 200:
                html = response.text
                if is_login_page(html, current_url):
                    raise AuthCredentialsError("ログイン画面に戻されました。セッションを確立できません。")
                if not has_authenticated_markers(html):
                    logger.debug("200を受け取りましたが従業員ページに見えません: %s", current_url)
                break

            if response.status_code not in REDIRECT_STATUSES:
                break

            location = response.headers.get("location")
            if not location:
                break
            next_url = urljoin(current_url, location)
            if is_login_url(next_url) or "sign_in" in location or "login" in location:
                raise AuthCredentialsError("ログイン画面に戻されました。セッションを確立できません。")
            current_url = next_url
        else:
            logger.debug("リダイレクト上限(%d)に達しました", self._max_redirects)

        return jar, session_id

    async def _load_valid_session(self) -> tuple[Optional[Session], bool]:
        """(有効なセッション, 期限切れで破棄したか) を返す"""
        session = await self._session_store.read()
        if session is None:
            return None, False

        remaining = session.expires_at - _now()
        if remaining < self._buffer:
            await self._session_store.clear()
            return None, True

        if remaining < timedelta(hours=1):
            logger.debug("セッションの残り時間: %d分", int(remaining.total_seconds() // 60))
        return session, False

    async def ensure_valid_session(self) -> str:
        """有効なセッションIDを返す。必要なら自動で再ログインする"""
        session, expired = await self._load_valid_session()
        if session is not None:
            return session.session_id

        can_relogin = self._auto_relogin and bool(self._email) and bool(self._password)
        if expired:
            if not can_relogin:
                raise SessionExpiredError("セッションの有効期限が切れています。")
            logger.debug("セッションの期限が近いため再ログインします")
        else:
            if not can_relogin:
                raise SessionMissingError("セッションがありません。")
            logger.debug("セッションがないためログインします")

        return await self.login(self._email, self._password)

    async def is_authenticated(self) -> bool:
        session, _ = await self._load_valid_session()
        return session is not None

    async def get_session_cookies(self) -> str:
        """保存済みCookieに固定Cookieを足したCookieヘッダ値"""
        session, expired = await self._load_valid_session()
        if session is None:
            if expired:
                raise SessionExpiredError("セッションの有効期限が切れています。")
            raise SessionMissingError("セッションがありません。")
        return merge_cookies(session.cookie_string, BASELINE_COOKIES)

    async def clear_session(self) -> None:
        await self._session_store.clear()

    async def logout(self) -> None:
        """ログアウトAPIを呼び（失敗は無視）、セッションとキャッシュを削除する"""
        session = await self._session_store.read()
        if session is not None:
            cookies = merge_cookies(BASELINE_COOKIES, f"{SESSION_COOKIE_NAME}={session.session_id}")
            try:
                await self._client.get(
                    f"{self._app_base_url}/employee/logout/",
                    headers=base_headers(
                        self._user_agent, cookies, f"{self._app_base_url}/employee"
                    ),
                )
            except httpx.HTTPError as e:
                logger.info("ログアウトAPIの呼び出しに失敗しました（無視します）: %s", e)

        if self._cache is not None:
            await self._cache.clear()
        await self._session_store.clear()
        logger.debug("ログアウトしました")
