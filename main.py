"""Jobcan勤怠エージェント - エントリーポイント"""
import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx
from dotenv import load_dotenv

from services.attendance_cache import AttendanceCache
from services.attendance_service import AttendanceService
from services.clock_executor import ClockExecutor
from services.clock_fields import CLOCK_IN_FIELD, CLOCK_OUT_FIELD
from services.clock_storage import ClockFieldStore
from services.config_loader import load_config, load_credentials
from services.errors import JobcanError
from services.fetcher import AuthenticatedFetcher
from services.kv_store import JsonFileStore, KeyValueStore
from services.models import AttendanceEntry, AttendanceStatus, BulkClockResult
from services.session_manager import SessionManager
from services.slack_client import SlackNotifier, ConsoleNotifier
from schedulers.scheduler import SyncScheduler


@dataclass
class Services:
    store: KeyValueStore
    session_manager: SessionManager
    attendance: AttendanceService
    field_store: ClockFieldStore
    executor: ClockExecutor
    notifier: ConsoleNotifier


def create_notifier(config: dict) -> ConsoleNotifier:
    slack_config = config["slack"]
    slack_token = os.getenv("SLACK_BOT_TOKEN", "")
    slack_channel = os.getenv("SLACK_NOTIFY_CHANNEL", slack_config.get("notify_channel", ""))
    if slack_config["enabled"] and slack_token:
        return SlackNotifier(token=slack_token, channel=slack_channel)
    return ConsoleNotifier()


def create_services(
    config: dict,
    client: httpx.AsyncClient,
    store: Optional[KeyValueStore] = None,
    notifier: Optional[ConsoleNotifier] = None,
) -> Services:
    """設定に基づいてサービスインスタンスを生成"""
    if store is None:
        store = JsonFileStore(config["storage"]["path"])
    if notifier is None:
        notifier = create_notifier(config)

    cache = AttendanceCache(store, ttl_minutes=config["cache"]["attendance_ttl_minutes"])
    email, password = load_credentials()
    session_manager = SessionManager(
        client, store, config, email=email, password=password, cache=cache
    )
    fetcher = AuthenticatedFetcher(client, session_manager)

    return Services(
        store=store,
        session_manager=session_manager,
        attendance=AttendanceService(fetcher, cache=cache),
        field_store=ClockFieldStore(store),
        executor=ClockExecutor(fetcher, config),
        notifier=notifier,
    )


def select_pending_days(entries: list[AttendanceEntry], today: date) -> list[AttendanceEntry]:
    """今日より前の欠勤（未打刻）日を抜き出す"""
    today_str = today.isoformat()
    return [
        e for e in entries
        if e.status == AttendanceStatus.ABSENCE and e.date < today_str
    ]


def _months_of(days: list[str]) -> set[tuple[int, int]]:
    return {(int(d[:4]), int(d[5:7])) for d in days}


async def run_sync(services: Services, today: Optional[date] = None) -> Optional[BulkClockResult]:
    """未打刻日を記憶値で一括打刻する（1回分）"""
    if today is None:
        today = date.today()

    entries = await services.attendance.get_recent_attendance(today)
    pending = select_pending_days(entries, today)
    if not pending:
        print("[勤怠エージェント] 未打刻の日はありません")
        return None
    print(f"[勤怠エージェント] 未打刻の日が{len(pending)}件あります")

    remembered = await services.field_store.get_all_remembered_values()
    if not remembered.get("notice"):
        services.notifier.send_error(
            "備考の記憶値がないため一括打刻できません。`clock` コマンドに --remember を付けて1回打刻してください"
        )
        return None

    # フォーム構成が変わっていれば記憶値では送らない
    page = await services.executor.fetch_modify_page(date.fromisoformat(pending[0].date))
    if not await services.field_store.can_resubmit(page.form_fields):
        services.notifier.send_drift_warning([f.name for f in page.form_fields])
        return None

    result = await services.executor.submit_pending_days(pending, remembered)
    for year, month in _months_of(result.succeeded):
        await services.attendance.invalidate(year, month)

    services.notifier.send_sync_summary(result)
    return result


async def clock_day(
    services: Services,
    target: date,
    overrides: dict,
    remember: bool = False,
) -> None:
    """指定日を打刻する。入力がない項目は記憶値を使う"""
    remembered = await services.field_store.get_all_remembered_values()
    values = {**remembered, **{k: v for k, v in overrides.items() if v}}

    state = await services.executor.clock_in_out(target, values)
    await services.attendance.invalidate(target.year, target.month)

    if remember:
        # 名前で指定された打刻場所も解決済みのIDで記憶する
        values = {**values, "group_id": state["spot_id"]}
        page = await services.executor.fetch_modify_page(target)
        await services.field_store.remember(
            page.form_fields,
            values,
            {f.name: bool(values.get(f.name)) for f in page.form_fields},
        )
    print(f"[勤怠エージェント] {target.isoformat()} を打刻しました")


def print_attendance(entries: list[AttendanceEntry]) -> None:
    for e in entries:
        times = f"{e.clock_in or '--:--'} - {e.clock_out or '--:--'}"
        codes = ",".join(e.raw_status)
        print(f"{e.date} ({e.day_of_week}) {e.status.value:<20} {times}  {codes}")


async def _run_command(args: argparse.Namespace, config: dict) -> None:
    async with httpx.AsyncClient() as client:
        services = create_services(config, client)

        if args.command == "sync":
            await run_sync(services)
        elif args.command == "attendance":
            print_attendance(await services.attendance.get_recent_attendance())
        elif args.command == "clock":
            overrides = {
                "notice": args.notice,
                "group_id": args.spot,
                CLOCK_IN_FIELD: args.clock_in,
                CLOCK_OUT_FIELD: args.clock_out,
            }
            await clock_day(
                services, date.fromisoformat(args.date), overrides, remember=args.remember
            )
        elif args.command == "logout":
            await services.session_manager.logout()
            print("[勤怠エージェント] ログアウトしました")


def run_scheduler(config: dict) -> None:
    """スケジューラで未打刻日の同期を定期実行する"""
    notifier = create_notifier(config)
    interval = config["scheduler"]["check_interval_minutes"]

    async def sync_once():
        async with httpx.AsyncClient() as client:
            await run_sync(create_services(config, client, notifier=notifier))

    def sync_job():
        try:
            asyncio.run(sync_once())
        except Exception as e:
            print(f"[勤怠エージェント] 同期中にエラー: {e}")
            notifier.send_error(str(e))

    scheduler = SyncScheduler(interval_minutes=interval, job_func=sync_job, run_immediately=True)
    scheduler.start()
    print(f"[勤怠エージェント] {interval}分間隔で未打刻日の同期を開始します")

    # シグナルハンドリング
    def shutdown(signum, frame):
        print("\n[勤怠エージェント] 停止中...")
        scheduler.stop()
        print("[勤怠エージェント] 停止しました")
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # メインループ
    print("[勤怠エージェント] Ctrl+Cで停止します")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        shutdown(None, None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Jobcan勤怠エージェント")
    parser.add_argument("--config", default="config.yaml", help="設定ファイルのパス")
    parser.add_argument("-v", "--verbose", action="store_true", help="詳細ログを出力する")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="定期的に未打刻日を同期する")
    sub.add_parser("sync", help="未打刻日を1回だけ同期する")
    sub.add_parser("attendance", help="前月・当月の勤怠を表示する")
    sub.add_parser("logout", help="ログアウトしてセッションとキャッシュを削除する")

    clock = sub.add_parser("clock", help="指定日の出勤・退勤を打刻する")
    clock.add_argument("date", help="YYYY-MM-DD")
    clock.add_argument("--notice", help="備考")
    clock.add_argument("--spot", help="打刻場所（IDまたは名前）")
    clock.add_argument("--clock-in", help="出勤時刻 HH:MM")
    clock.add_argument("--clock-out", help="退勤時刻 HH:MM")
    clock.add_argument("--remember", action="store_true", help="入力値を次回以降のために記憶する")
    return parser


def main(argv=None):
    """メイン起動処理"""
    args = build_parser().parse_args(argv)
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)

    if args.command == "run":
        run_scheduler(config)
        return

    try:
        asyncio.run(_run_command(args, config))
    except JobcanError as e:
        print(f"[勤怠エージェント] {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
