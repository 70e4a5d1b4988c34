import logging
import sys
from typing import Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from services.models import BulkClockResult

logger = logging.getLogger(__name__)


def format_sync_summary(result: BulkClockResult) -> str:
    """一括打刻の結果を通知用の文面にする"""
    lines = [f"✅ 未打刻日の一括打刻: 成功 {len(result.succeeded)}件 / 失敗 {len(result.failed)}件"]
    if result.succeeded:
        lines.append("成功: " + ", ".join(result.succeeded))
    for day, reason in result.failed.items():
        lines.append(f"失敗: {day} ({reason})")
    return "\n".join(lines)


def format_drift_warning(fields: Sequence[str]) -> str:
    return (
        "⚠️ 打刻フォームの項目が変わったため自動打刻を中止しました。"
        f"`clock` コマンドで入力し直してください（現在の項目: {', '.join(fields)}）"
    )


class ConsoleNotifier:
    """コンソール出力による通知（フォールバック用）"""

    def send(self, message: str) -> bool:
        print(f"[勤怠通知] {message}", file=sys.stdout)
        return True

    def send_error(self, error: str) -> bool:
        print(f"[勤怠エラー] {error}", file=sys.stderr)
        return True

    def send_sync_summary(self, result: BulkClockResult) -> bool:
        return self.send(format_sync_summary(result))

    def send_drift_warning(self, fields: Sequence[str]) -> bool:
        return self.send(format_drift_warning(fields))


class SlackNotifier(ConsoleNotifier):
    """Slack APIによる通知サービス"""

    def __init__(self, token: str, channel: str):
        self._channel = channel
        self._client = WebClient(token=token) if token else None
        self._fallback = ConsoleNotifier()

    def send(self, message: str) -> bool:
        """メッセージ送信（トークン未設定時はフォールバック）"""
        if self._client is None:
            return self._fallback.send(message)

        try:
            self._client.chat_postMessage(channel=self._channel, text=message)
            return True
        except SlackApiError as e:
            logger.warning("Slack通知に失敗しました: %s", e.response.get("error"))
            return False

    def send_error(self, error: str) -> bool:
        """エラー通知"""
        message = f"❌ 打刻に失敗しました。手動確認をお願いします（エラー: {error}）"
        return self.send(message)
