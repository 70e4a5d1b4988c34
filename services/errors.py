from typing import Optional


class JobcanError(Exception):
    """Jobcan連携の基底例外。hintには利用者向けの対処方法を入れる"""

    default_hint = ""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint if hint is not None else self.default_hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} {self.hint}"
        return self.message


class AuthParseError(JobcanError):
    """ログインページ・Cookieからトークンやセッションを取り出せない"""

    default_hint = "ログイン画面の構造が変わった可能性があります。"


class AuthCredentialsError(JobcanError):
    """認証情報が拒否された"""

    default_hint = "config の認証情報 (ATTENDANCE_USER / ATTENDANCE_PASS) を確認してください。"


class AuthProtocolError(JobcanError):
    """OAuthのリダイレクトが想定外の形をしている"""


class SessionMissingError(JobcanError):
    """セッションが保存されていない"""

    default_hint = (
        "ログアウト状態です。ATTENDANCE_USER / ATTENDANCE_PASS を設定し、"
        "session.auto_relogin を有効にしてください。"
    )


class SessionExpiredError(JobcanError):
    """セッションの有効期限切れ"""

    default_hint = "session.auto_relogin を有効にするか、認証情報を更新してください。"


class ReauthenticationFailedError(JobcanError):
    """再ログイン後のリトライでも認証エラーになった"""

    default_hint = "認証情報を確認して再度ログインしてください。"


class PortalRequestError(JobcanError):
    """通信エラー、または想定外のHTTPステータス"""


class ClockingUnsupportedError(JobcanError):
    """打刻に必要なデータが修正画面から取得できない"""

    def __init__(self, missing: list[str], hint: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(
            f"この日は打刻できません（不足: {', '.join(self.missing)}）", hint
        )


class ClockValueError(JobcanError):
    """送信前の入力値チェックで弾かれた"""


class ClockSubmissionError(JobcanError):
    """出勤(in)・退勤(out)いずれかの送信が拒否された"""

    def __init__(self, step: str, detail: str, hint: Optional[str] = None):
        self.step = step
        label = "出勤" if step == "in" else "退勤"
        super().__init__(f"{label}打刻({step})に失敗しました: {detail}", hint)


class DateLockedError(JobcanError):
    """同じ日付の打刻がすでに処理中"""
