from datetime import datetime
from typing import Optional

from services.kv_store import KeyValueStore
from services.models import Session

SESSION_ID_KEY = "jobcan_session_cookie"
SESSION_COOKIES_KEY = "jobcan_session_cookies"
SESSION_EXPIRY_KEY = "jobcan_session_expiry"


class SessionStore:
    """セッションID・マージ済みCookie・有効期限をストアに読み書きする"""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def read(self) -> Optional[Session]:
        session_id = await self._store.get(SESSION_ID_KEY)
        cookies = await self._store.get(SESSION_COOKIES_KEY)
        expiry = await self._store.get(SESSION_EXPIRY_KEY)
        if not session_id or not cookies or not expiry:
            return None

        try:
            expires_at = datetime.fromisoformat(expiry)
        except ValueError:
            await self.clear()
            return None

        return Session(session_id=session_id, cookie_string=cookies, expires_at=expires_at)

    async def write(self, session: Session) -> None:
        await self._store.set(SESSION_ID_KEY, session.session_id)
        await self._store.set(SESSION_COOKIES_KEY, session.cookie_string)
        await self._store.set(SESSION_EXPIRY_KEY, session.expires_at.isoformat())

    async def clear(self) -> None:
        await self._store.delete(SESSION_ID_KEY)
        await self._store.delete(SESSION_COOKIES_KEY)
        await self._store.delete(SESSION_EXPIRY_KEY)
