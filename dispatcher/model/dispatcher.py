"""
스케줄 엔트리 및 Dispatch 루프 상태 모델 정의
"""

from datetime import datetime
from enum import Enum, IntEnum

from croniter import croniter
from pydantic import BaseModel, ConfigDict


class ScheduleEntry(BaseModel):
    """schedule 테이블 행: job을 after 이후 1회 실행"""
    model_config = ConfigDict(frozen=True)

    id: int
    job: int
    after: datetime | str


class IntervalCode(str, Enum):
    """
    실행 주기 코드 -> 크론 표현식

    enqueue 경로에서 다음 after 값을 계산할 때 사용합니다.
    """
    YEARLY = "y"
    MONTHLY = "m"
    WEEKLY = "w"
    DAILY = "d"
    HOURLY = "h"
    MINUTELY = "i"
    DISABLED = "n"

    @property
    def cron_expression(self) -> str:
        return _INTERVAL_CRON[self]

    @property
    def is_disabled(self) -> bool:
        return not self.cron_expression

    def next_run(self, base: datetime) -> datetime | None:
        """base 이후 다음 실행 시각 (비활성이면 None)"""
        if self.is_disabled:
            return None
        return croniter(self.cron_expression, base).get_next(datetime)


_INTERVAL_CRON = {
    IntervalCode.YEARLY: "0 0 1 1 *",
    IntervalCode.MONTHLY: "0 0 1 * *",
    IntervalCode.WEEKLY: "0 0 * * 0",  # 일요일
    IntervalCode.DAILY: "0 0 * * *",
    IntervalCode.HOURLY: "0 * * * *",
    IntervalCode.MINUTELY: "* * * * *",
    IntervalCode.DISABLED: "",
}


class LoopState(str, Enum):
    """Dispatch 루프 상태"""
    AWAITING_STORE = "AWAITING_STORE"  # 사용 가능한 저장소 연결 없음
    POLLING = "POLLING"
    STOPPED = "STOPPED"


class ExitCode(IntEnum):
    """프로세스 종료 코드"""
    OK = 0  # 정상 종료 (메모리 한도 종료 포함)
    FATAL = 1  # 인증 실패, DB 없음, 재연결 한도 초과
