"""
Worker 모델 - 실행 결과 및 워커 추적 구조체
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ExecutionResult(BaseModel):
    """JobRunner 실행 결과"""
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ExecutionOutcome(str, Enum):
    """워커 1회 실행의 결과"""
    DONE = "DONE"  # JobRunner 경로 완료, 엔트리 삭제됨
    NOT_FOUND = "NOT_FOUND"  # job 없음, 실행 생략
    FAILED = "FAILED"  # 재시도 불가 오류 또는 재시도 소진, 엔트리 유지


@dataclass
class WorkerRecord:
    """실행 중인 워커 (감독자 내부, 비영속)"""
    process: Any  # multiprocessing.Process
    entry_id: int
    job: int
    started_at: datetime = field(default_factory=datetime.now)
