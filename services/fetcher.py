import logging

import httpx

from services.errors import PortalRequestError, ReauthenticationFailedError
from services.portal_pages import is_login_page
from services.session_manager import SessionManager, base_headers

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)


def is_auth_failure(response: httpx.Response) -> bool:
    """401/403、またはログイン画面が返ってきた場合に認証切れとみなす"""
    if response.status_code in AUTH_FAILURE_STATUSES:
        return True
    return is_login_page(response.text, str(response.url))


class AuthenticatedFetcher:
    """セッションCookie付きでリクエストし、認証切れなら1回だけ再ログインして再送する"""

    def __init__(self, client: httpx.AsyncClient, session_manager: SessionManager):
        self._client = client
        self._session_manager = session_manager

    @property
    def app_base_url(self) -> str:
        return self._session_manager.app_base_url

    async def _build_headers(self, extra: dict = None) -> dict:
        await self._session_manager.ensure_valid_session()
        cookies = await self._session_manager.get_session_cookies()
        headers = base_headers(
            self._session_manager.user_agent,
            cookies,
            f"{self._session_manager.app_base_url}/employee",
        )
        if extra:
            headers.update(extra)
        return headers

    async def _send(self, method: str, url: str, headers: dict, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(
                method, url, headers=headers, follow_redirects=True, **kwargs
            )
        except httpx.HTTPError as e:
            raise PortalRequestError(f"{method} {url} の通信に失敗しました: {e}") from e

    async def request(self, method: str, url: str, headers: dict = None, **kwargs) -> httpx.Response:
        response = await self._send(method, url, await self._build_headers(headers), **kwargs)
        if not is_auth_failure(response):
            return response

        logger.info("認証切れを検出しました（HTTP %s）。再ログインします: %s", response.status_code, url)
        await self._session_manager.clear_session()
        await self._session_manager.ensure_valid_session()

        retry = await self._send(method, url, await self._build_headers(headers), **kwargs)
        if is_auth_failure(retry):
            raise ReauthenticationFailedError(
                f"再ログイン後も認証エラーになりました（HTTP {retry.status_code}）: {url}"
            )
        return retry

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)
