"""Dispatcher 모듈 - schedule 테이블 폴링 및 due 엔트리 실행"""

from dispatcher.model.dispatcher import ExitCode, IntervalCode, LoopState, ScheduleEntry
from dispatcher.store import ScheduleStore

__all__ = [
    "ScheduleEntry",
    "ScheduleStore",
    "IntervalCode",
    "LoopState",
    "ExitCode",
]
