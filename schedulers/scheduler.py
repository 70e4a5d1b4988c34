# schedulers/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime
from typing import Callable

JOB_ID = "pending_day_sync"


class SyncScheduler:
    """APSchedulerによる未打刻日同期の定期実行管理"""

    def __init__(self, interval_minutes: int, job_func: Callable, run_immediately: bool = False):
        self._interval = interval_minutes
        self._job_func = job_func
        self._scheduler = BackgroundScheduler()
        options = {}
        if run_immediately:
            # 起動直後にも1回実行する
            options["next_run_time"] = datetime.now()
        self._scheduler.add_job(
            self._job_func,
            trigger=IntervalTrigger(minutes=self._interval),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **options,
        )

    @property
    def job(self):
        return self._scheduler.get_job(JOB_ID)

    def start(self):
        """スケジューラ開始"""
        self._scheduler.start()

    def stop(self):
        """スケジューラ停止"""
        self._scheduler.shutdown(wait=False)
