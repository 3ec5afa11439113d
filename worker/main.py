"""
WorkerSupervisor: 프로세스 격리 워커 감독자 모듈

due 엔트리마다 별도 OS 프로세스(multiprocessing)를 띄워 실행하고,
동시 실행 수를 max_parallel로 제한하며, 종료된 워커를 수거(reap)합니다.

- 워커는 자신의 asyncio 루프와 DB 연결을 새로 만듭니다 (부모 연결 상속 금지)
- 격리 사용 불가/비활성/프로세스 시작 실패 시 호출자 컨텍스트에서 동기 실행
- 죽은 워커의 엔트리는 저장소에 남아 다음 폴링에서 다시 실행됨 (at-least-once)
"""

import asyncio
import logging
import multiprocessing
import sys

from common.config import DaemonSettings
from common.logging import setup_logging
from database import release_inherited
from dispatcher.model.dispatcher import ScheduleEntry
from worker.executor import JobExecutor
from worker.model import ExecutionOutcome, WorkerRecord

logger = logging.getLogger(__name__)


def _worker_main(entry: ScheduleEntry, settings: DaemonSettings) -> None:
    """격리 워커 프로세스 진입점"""
    setup_logging(settings)
    release_inherited()

    outcome = asyncio.run(JobExecutor(settings).execute(entry))
    sys.exit(0 if outcome is not ExecutionOutcome.FAILED else 1)


class WorkerSupervisor:
    """
    워커 감독자

    실행 중 워커 목록(_workers)의 유일한 변경 주체입니다.
    """

    def __init__(self, settings: DaemonSettings, context=None):
        """
        Args:
            settings: 데몬 설정
            context: multiprocessing 컨텍스트 (None이면 settings.start_method로 생성)
        """
        self._settings = settings
        self._context = context
        self._workers: dict[int, WorkerRecord] = {}
        self._stopping = False

        if self._context is None and settings.process_isolation:
            try:
                self._context = multiprocessing.get_context(settings.start_method)
            except ValueError as e:
                logger.warning(f"Process isolation unavailable ({e}), running jobs synchronously")

    @property
    def isolated(self) -> bool:
        """프로세스 격리 사용 여부"""
        return self._settings.process_isolation and self._context is not None

    @property
    def stopping(self) -> bool:
        """종료 요청 여부"""
        return self._stopping

    def stop(self) -> None:
        """종료 요청: 빈 슬롯 대기를 멈추고 drain을 시간 제한 모드로 전환"""
        self._stopping = True

    @property
    def running_count(self) -> int:
        """추적 중인 워커 수"""
        return len(self._workers)

    async def dispatch(self, entry: ScheduleEntry) -> None:
        """
        엔트리 실행 위임 (격리 시 시작만 하고 반환, 완료는 reap으로 확인)
        """
        if not self.isolated:
            await self._run_inline(entry)
            return

        if not await self._wait_for_slot():
            logger.info(f"Stop requested, job {entry.job} left for the next run (entry={entry.id})")
            return

        process = self._context.Process(
            target=_worker_main,
            args=(entry, self._settings),
            name=f"multiflexi-job-{entry.job}",
        )
        try:
            process.start()
        except OSError as e:
            logger.warning(f"Failed to start worker for job {entry.job}: {e}. Running synchronously")
            await self._run_inline(entry)
            return

        self._workers[process.pid] = WorkerRecord(process=process, entry_id=entry.id, job=entry.job)
        logger.info(
            f"Worker started: pid={process.pid}, job={entry.job}, entry={entry.id} "
            f"({self.running_count} running)"
        )

    async def _wait_for_slot(self) -> bool:
        """
        동시 실행 수가 max_parallel 미만이 될 때까지 대기 (0 이하: 무제한)

        Returns:
            False: 대기 중 종료 요청
        """
        limit = self._settings.max_parallel

        while not self._stopping:
            if limit <= 0:
                return True
            self.reap()
            if self.running_count < limit:
                return True
            await asyncio.sleep(self._settings.slot_poll_interval)
        return False

    async def _run_inline(self, entry: ScheduleEntry) -> None:
        """호출자 컨텍스트에서 동기 실행 (단일 슬롯)"""
        try:
            await JobExecutor(self._settings).execute(entry)
        except Exception as e:
            logger.error(f"Synchronous job {entry.job} error: {e}", exc_info=True)

    def reap(self) -> int:
        """
        종료된 워커 수거 (non-blocking)

        Returns:
            수거한 워커 수
        """
        finished = [pid for pid, record in self._workers.items() if not record.process.is_alive()]
        for pid in finished:
            record = self._workers.pop(pid)
            record.process.join(0)
            exitcode = record.process.exitcode
            if exitcode == 0:
                logger.debug(f"Worker {pid} finished (job={record.job})")
            else:
                # 엔트리는 저장소에 남아 있으므로 다음 폴링에서 다시 선택됨
                logger.warning(
                    f"Worker {pid} exited with code {exitcode} (job={record.job}, entry={record.entry_id})"
                )
        return len(finished)

    async def drain(self, timeout: float | None = None) -> None:
        """
        실행 중 워커 종료 대기

        Args:
            timeout: None이면 모든 워커가 끝날 때까지 대기 (job은 중단하지 않음).
                값이 있으면 그 시간 이후 남은 워커를 강제 종료 (엔트리는 due로 남음).
                대기 중 stop()이 호출되면 shutdown_timeout 이후 강제 종료로 전환.
        """
        self.reap()
        if not self._workers:
            return

        logger.info(f"Waiting for {self.running_count} running workers...")
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._workers:
            if deadline is None and self._stopping:
                timeout = self._settings.shutdown_timeout
                deadline = loop.time() + timeout
            if deadline is not None and loop.time() >= deadline:
                break
            await asyncio.sleep(self._settings.slot_poll_interval)
            self.reap()

        if not self._workers:
            logger.info("All workers completed")
            return

        logger.warning(f"Shutdown timeout ({timeout}s), terminating {self.running_count} workers")
        for record in self._workers.values():
            record.process.terminate()
        for record in self._workers.values():
            record.process.join(5)
        self.reap()
