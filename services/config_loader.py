import os
import yaml
from pathlib import Path

DEFAULT_CONFIG = {
    "scheduler": {
        "check_interval_minutes": 60,
    },
    "portal": {
        "id_base_url": "https://id.jobcan.jp",
        "app_base_url": "https://ssl.jobcan.jp",
        "client_id": "BhMffo7y3w3pMipg9Q4Z1jERl9LQZLGrtkV1w55e",
        "sign_in_path": "/users/sign_in",
        "callback_path": "/jbcoauth/callback",
        "user_agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
        ),
    },
    "session": {
        "lifetime_hours": 24,
        "expiry_buffer_minutes": 5,
        "auto_relogin": True,
        "max_redirects": 5,
    },
    "cache": {
        "attendance_ttl_minutes": 5,
    },
    "storage": {
        "path": ".jobcan/store.json",
    },
    "clock": {
        "strict_spot_match": False,
    },
    "slack": {
        "enabled": True,
        "notify_channel": "",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """ベース設定にオーバーライドをマージする"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str = "config.yaml") -> dict:
    """YAML設定ファイルをロードし、デフォルト設定とマージして返す"""
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
        return _deep_merge(DEFAULT_CONFIG, user_config)
    return _deep_merge(DEFAULT_CONFIG, {})


def load_credentials() -> tuple[str, str]:
    """環境変数（.env）からJobcanのログイン情報を取得する"""
    return os.getenv("ATTENDANCE_USER", ""), os.getenv("ATTENDANCE_PASS", "")
