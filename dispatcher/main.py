"""
Dispatcher: due 엔트리 폴링/실행 데몬

schedule 테이블을 주기적으로 폴링하여 실행 시점이 지난 엔트리를
WorkerSupervisor에 넘기고, 종료된 워커를 수거합니다.

상태:
    AWAITING_STORE -> POLLING     저장소 연결 + due 쿼리 왕복 성공
    AWAITING_STORE -> STOPPED     PERMANENT 오류 또는 재연결 한도 초과 (exit 1)
    POLLING -> AWAITING_STORE     due 쿼리 실패 (PERMANENT 제외)
    POLLING -> STOPPED            PERMANENT 오류 (exit 1), 메모리 한도/one-shot/종료 신호 (exit 0)

실행 방법:
    python -m dispatcher.main
    python main.py
    multiflexi-scheduler --env-file .env
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable

import psutil
from pydantic import ValidationError

from common.config import DaemonSettings, load_settings
from common.logging import log_banner, setup_logging
from database import (
    ConnectionFactory,
    ErrorKind,
    UnsupportedEngineError,
    classify_error,
)
from dispatcher.model.dispatcher import ExitCode, LoopState
from dispatcher.store import ScheduleStore
from worker.main import WorkerSupervisor

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def _resident_memory() -> int:
    """데몬 프로세스 RSS (bytes)"""
    return psutil.Process().memory_info().rss


class Dispatcher:
    """
    Due-job Dispatcher

    저장소 연결 하나를 소유하며(열기: AWAITING_STORE -> POLLING,
    닫기/재연결: 일시 오류), 워커에는 절대 넘기지 않습니다.
    """

    def __init__(
        self,
        settings: DaemonSettings,
        supervisor: WorkerSupervisor | None = None,
        store_opener: Callable[[], Awaitable[ScheduleStore]] | None = None,
        memory_usage: Callable[[], int] | None = None,
    ):
        """
        Args:
            settings: 데몬 설정
            supervisor: 워커 감독자 (None이면 설정으로 생성)
            store_opener: 저장소를 새로 여는 코루틴 함수 (테스트에서 교체)
            memory_usage: 현재 메모리 사용량(bytes) 함수 (테스트에서 교체)
        """
        self._settings = settings
        self._supervisor = supervisor or WorkerSupervisor(settings)
        self._store_opener = store_opener or self._open_store
        self._memory_usage = memory_usage or _resident_memory
        self._store: ScheduleStore | None = None
        self._state = LoopState.AWAITING_STORE
        self._exit_code = ExitCode.OK
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def exit_code(self) -> ExitCode:
        return self._exit_code

    async def _open_store(self) -> ScheduleStore:
        return await ScheduleStore.connect(
            ConnectionFactory(self._settings.database),
            suppress_type_warning=self._settings.suppress_type_warning,
        )

    async def start(self) -> ExitCode:
        """
        Dispatcher 메인 루프

        Returns:
            프로세스 종료 코드
        """
        self._stop_event = asyncio.Event()
        self._state = LoopState.AWAITING_STORE
        log_banner(logger, "MultiFlexi Executor Daemon started")
        logger.info(
            f"Dispatcher started (daemonize={self._settings.daemonize}, "
            f"cycle_pause={self._settings.cycle_pause}s, max_parallel={self._settings.max_parallel}, "
            f"isolated={self._supervisor.isolated})"
        )

        try:
            while self._state is not LoopState.STOPPED:
                if self._state is LoopState.AWAITING_STORE:
                    self._state = await self._await_store()
                else:
                    self._state = await self._cycle()
        except asyncio.CancelledError:
            logger.info("Dispatcher cancelled")
            self._state = LoopState.STOPPED
            self._supervisor.stop()
        finally:
            # 종료 요청일 때만 시간 제한, 그 외(one-shot, 메모리 한도)는 job 완료까지 대기
            await self._supervisor.drain(
                self._settings.shutdown_timeout if self._supervisor.stopping else None
            )
            await self._close_store()
            log_banner(logger, "MultiFlexi Daemon ended")

        return self._exit_code

    async def stop(self) -> None:
        """종료 요청 (현재 사이클 이후 정상 종료)"""
        logger.info("Stopping dispatcher...")
        if self._stop_event:
            self._stop_event.set()
        self._supervisor.stop()

    @property
    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def _fatal(self, message: str) -> LoopState:
        logger.critical(message)
        self._exit_code = ExitCode.FATAL
        return LoopState.STOPPED

    async def _await_store(self) -> LoopState:
        """저장소 연결 + due 쿼리 왕복 (제한된 횟수 재시도)"""
        attempts = self._settings.reconnect_attempts

        for attempt in range(1, attempts + 1):
            if self._stop_requested:
                return LoopState.STOPPED

            store = None
            try:
                store = await self._store_opener()
                await store.due()
            except UnsupportedEngineError as e:
                return self._fatal(f"Configuration error: {e}")
            except Exception as e:
                if store is not None:
                    await store.close()
                if classify_error(e) is ErrorKind.PERMANENT:
                    return self._fatal(f"Permanent database error, shutting down: {e}")

                logger.error(f"Database unavailable (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await self._sleep(self._settings.reconnect_delay)
                continue

            self._store = store
            logger.info("Schedule store connected")
            return LoopState.POLLING

        return self._fatal(f"Database still unavailable after {attempts} attempts, giving up")

    async def _cycle(self) -> LoopState:
        """폴링 사이클 1회"""
        if self._memory_limit_reached():
            return LoopState.STOPPED

        try:
            entries = await self._store.due()
        except Exception as e:
            if classify_error(e) is ErrorKind.PERMANENT:
                return self._fatal(f"Permanent database error, shutting down: {e}")
            # TRANSIENT, UNKNOWN: 재연결 (제한된 시도 후 exit 1)
            logger.error(f"Database error: {e}")
            await self._close_store()
            return LoopState.AWAITING_STORE

        if entries:
            logger.debug(f"Found {len(entries)} due entries")

        for entry in entries:
            if self._stop_requested:
                break
            try:
                await self._supervisor.dispatch(entry)
            except Exception as e:
                # 개별 job 오류는 루프를 멈추지 않음
                logger.error(f"Job error (job={entry.job}, entry={entry.id}): {e}", exc_info=True)

        self._supervisor.reap()

        if not self._settings.daemonize:
            return LoopState.STOPPED

        await self._sleep(self._settings.cycle_pause)
        return LoopState.STOPPED if self._stop_requested else LoopState.POLLING

    def _memory_limit_reached(self) -> bool:
        limit_mb = self._settings.memory_limit_mb
        if limit_mb <= 0:
            return False

        usage_mb = self._memory_usage() / BYTES_PER_MB
        if usage_mb >= limit_mb:
            logger.warning(
                f"Memory soft limit reached ({usage_mb:.0f} MB of {limit_mb} MB). "
                f"Shutting down daemon gracefully."
            )
            return True
        return False

    async def _sleep(self, seconds: float) -> None:
        """인터럽트 가능한 sleep"""
        if self._stop_event:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass

    async def _close_store(self) -> None:
        if self._store is not None:
            await self._store.close()
            self._store = None


async def main(settings: DaemonSettings) -> int:
    """데몬 실행 (시그널 핸들러 등록 포함)"""
    dispatcher = Dispatcher(settings)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(dispatcher.stop())

    # Windows는 add_signal_handler를 지원하지 않음
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    return int(await dispatcher.start())


def run(argv: list[str] | None = None) -> None:
    """콘솔 진입점"""
    parser = argparse.ArgumentParser(description="MultiFlexi due-job dispatch daemon")
    parser.add_argument("-e", "--env-file", default=".env", help="path to .env file")
    parser.add_argument("-c", "--config", default=None, help="path to YAML config file")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(config_file=args.config, env_file=args.env_file)
    except (ValidationError, FileNotFoundError, ValueError) as e:
        setup_logging()
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(int(ExitCode.FATAL))

    setup_logging(settings)

    try:
        code = asyncio.run(main(settings))
    except KeyboardInterrupt:
        code = int(ExitCode.OK)
    sys.exit(code)


if __name__ == "__main__":
    run()
