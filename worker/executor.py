"""
잡 실행기 모듈

격리된 워커 안에서 ScheduleEntry 하나를 실행합니다.

순서:
    1. 새 ConnectionFactory + JobRunner 생성 (상속된 연결 사용 금지)
    2. job 없으면 "not found" 기록 후 실행 생략
    3. JobRunner.run() -> cleanup() (종료 코드가 0이 아니어도 경로 완료로 간주)
    4. 두 번째 새 저장소 연결로 엔트리 삭제 후 연결 해제

재시도: 최대 2회. 첫 실패가 TRANSIENT로 분류된 경우에만 두 번째 시도.
"""

import asyncio
import logging
import random

from common.config import DaemonSettings
from database import ConnectionFactory, ErrorKind, classify_error
from dispatcher.model.dispatcher import ScheduleEntry
from dispatcher.store import ScheduleStore
from worker.base import JobRunner, get_runner, load_runners
from worker.model import ExecutionOutcome

logger = logging.getLogger(__name__)


class JobExecutor:
    """ScheduleEntry 1건 실행기"""

    MAX_ATTEMPTS = 2

    def __init__(
        self,
        settings: DaemonSettings,
        runner_cls: type[JobRunner] | None = None,
        sleep=asyncio.sleep,
    ):
        """
        Args:
            settings: 데몬 설정
            runner_cls: JobRunner 클래스 (None이면 settings.job_runner로 조회)
            sleep: 재시도 대기 함수 (테스트에서 교체)
        """
        self._settings = settings
        if runner_cls is None:
            load_runners()
            runner_cls = get_runner(settings.job_runner)
        self._runner_cls = runner_cls
        self._sleep = sleep

    def retry_delay(self, attempt: int) -> float:
        """시도 횟수에 비례하는 기본 대기 + 무작위 지터"""
        return self._settings.retry_delay * attempt + random.uniform(0, self._settings.retry_jitter)

    async def execute(self, entry: ScheduleEntry) -> ExecutionOutcome:
        """
        엔트리 실행

        Returns:
            ExecutionOutcome (FAILED면 엔트리는 저장소에 남아 다음 폴링에서 다시 선택됨)
        """
        logger.info(f"Starting job {entry.job} (entry={entry.id}, after={entry.after})")
        completed = False

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                if not completed:
                    if not await self._run_job(entry):
                        return await self._job_not_found(entry)
                    completed = True

                await self._remove_entry(entry)
                logger.info(f"Job {entry.job} done (entry={entry.id})")
                return ExecutionOutcome.DONE

            except Exception as e:
                kind = classify_error(e)
                if kind is ErrorKind.TRANSIENT and attempt < self.MAX_ATTEMPTS:
                    delay = self.retry_delay(attempt)
                    logger.warning(
                        f"Transient error on job {entry.job} (attempt {attempt}/{self.MAX_ATTEMPTS}): {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await self._sleep(delay)
                    continue

                logger.error(
                    f"Job {entry.job} failed (attempt {attempt}/{self.MAX_ATTEMPTS}, {kind.value}): {e}"
                )
                return ExecutionOutcome.FAILED

        return ExecutionOutcome.FAILED

    async def _run_job(self, entry: ScheduleEntry) -> bool:
        """
        JobRunner 실행 (시도마다 새 연결)

        Returns:
            False: job 없음
        """
        job_runner = self._runner_cls(ConnectionFactory(self._settings.database))
        try:
            if not await job_runner.exists(entry.job):
                return False

            result = await job_runner.run(entry.job)
            if result.succeeded:
                logger.info(f"Job {entry.job} exited with code 0")
            else:
                logger.warning(f"Job {entry.job} exited with code {result.exit_code}")

            await job_runner.cleanup(entry.job)
            return True
        finally:
            await job_runner.close()

    async def _remove_entry(self, entry: ScheduleEntry) -> None:
        """두 번째 새 연결로 엔트리 삭제"""
        store = await self._open_store()
        try:
            await store.remove(entry.id)
        finally:
            await store.close()

    async def _job_not_found(self, entry: ScheduleEntry) -> ExecutionOutcome:
        logger.error(f"Job #{entry.job} does not exist (entry={entry.id})")
        if self._settings.purge_missing_jobs:
            await self._remove_entry(entry)
            logger.info(f"Removed dangling schedule entry {entry.id}")
        return ExecutionOutcome.NOT_FOUND

    async def _open_store(self) -> ScheduleStore:
        return await ScheduleStore.connect(
            ConnectionFactory(self._settings.database),
            suppress_type_warning=self._settings.suppress_type_warning,
        )
