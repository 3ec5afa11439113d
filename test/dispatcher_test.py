"""
Dispatcher 테스트

테스트 항목:
1. one-shot 모드: due 엔트리를 한 번 넘기고 exit 0
2. 메모리 한도 도달 시 dispatch 없이 STOPPED (exit 0)
3. AWAITING_STORE에서 인증 오류 -> 재시도 없이 exit 1
4. 일시 오류가 계속되면 재연결 한도 소진 후 exit 1
5. 폴링 중 일시 오류 -> AWAITING_STORE로 돌아가 재연결
6. 폴링 중 영구 오류 -> exit 1
7. 개별 job 오류는 루프를 멈추지 않음
8. 데몬 모드 stop() -> 대기 중단 후 exit 0
9. SQLite 통합: 실제 저장소 + 동기 실행
10. one-shot 종료는 shutdown timeout보다 긴 job도 완료까지 대기 (강제 종료는 stop()일 때만)

실행: python -m pytest test/dispatcher_test.py -v
"""

import asyncio
import logging

import pytest

from dispatcher.main import Dispatcher, run
from dispatcher.model.dispatcher import ExitCode, LoopState, ScheduleEntry

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MB = 1024 * 1024


# ============================================================
# Fakes
# ============================================================

class FakeStore:
    """due() 결과를 순서대로 돌려주는 저장소 대역 (마지막 결과 반복)"""

    def __init__(self, *results):
        self._results = list(results) or [[]]
        self.due_calls = 0
        self.closed = False

    async def due(self):
        self.due_calls += 1
        result = self._results[0] if len(self._results) == 1 else self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self):
        self.closed = True


class FakeOpener:
    """저장소 opener 대역: 예외 또는 FakeStore를 순서대로 반환 (마지막 반복)"""

    def __init__(self, *results):
        self._results = list(results)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        result = self._results[0] if len(self._results) == 1 else self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeSupervisor:
    """WorkerSupervisor 대역"""

    isolated = True

    def __init__(self, fail_jobs: set[int] | None = None):
        self.dispatched: list[int] = []
        self.reaps = 0
        self.drained = False
        self.drain_timeout: float | None = None
        self.stopping = False
        self._fail_jobs = fail_jobs or set()

    async def dispatch(self, entry: ScheduleEntry) -> None:
        if entry.job in self._fail_jobs:
            raise RuntimeError(f"cannot launch job {entry.job}")
        self.dispatched.append(entry.job)

    def reap(self) -> int:
        self.reaps += 1
        return 0

    def stop(self) -> None:
        self.stopping = True

    async def drain(self, timeout: float | None = None) -> None:
        self.drained = True
        self.drain_timeout = timeout


def entries(*jobs: int) -> list[ScheduleEntry]:
    return [ScheduleEntry(id=i, job=job, after="") for i, job in enumerate(jobs, start=1)]


@pytest.fixture
def one_shot(make_settings):
    return make_settings(MULTIFLEXI_DAEMONIZE="false", MULTIFLEXI_RECONNECT_ATTEMPTS=3)


# ============================================================
# Loop Tests
# ============================================================

class TestDispatchLoop:
    """상태 머신 테스트"""

    @pytest.mark.asyncio
    async def test_one_shot_dispatches_due_entries(self, one_shot):
        store = FakeStore(entries(42, 43))
        supervisor = FakeSupervisor()
        dispatcher = Dispatcher(one_shot, supervisor=supervisor, store_opener=FakeOpener(store))

        code = await dispatcher.start()

        assert code is ExitCode.OK
        assert dispatcher.state is LoopState.STOPPED
        assert supervisor.dispatched == [42, 43]
        assert supervisor.reaps == 1
        assert supervisor.drained is True
        assert supervisor.drain_timeout is None  # one-shot: job 완료까지 대기
        assert store.closed is True

    @pytest.mark.asyncio
    async def test_memory_guard_stops_without_dispatch(self, make_settings):
        settings = make_settings(MULTIFLEXI_MEMORY_LIMIT_MB=100)
        supervisor = FakeSupervisor()
        dispatcher = Dispatcher(
            settings,
            supervisor=supervisor,
            store_opener=FakeOpener(FakeStore(entries(42))),
            memory_usage=lambda: 100 * MB,
        )

        code = await asyncio.wait_for(dispatcher.start(), timeout=5)

        assert code is ExitCode.OK
        assert supervisor.dispatched == []
        assert supervisor.drain_timeout is None

    @pytest.mark.asyncio
    async def test_memory_below_limit_keeps_polling(self, make_settings):
        settings = make_settings(MULTIFLEXI_DAEMONIZE="false", MULTIFLEXI_MEMORY_LIMIT_MB=100)
        supervisor = FakeSupervisor()
        dispatcher = Dispatcher(
            settings,
            supervisor=supervisor,
            store_opener=FakeOpener(FakeStore(entries(42))),
            memory_usage=lambda: 99 * MB,
        )

        assert await dispatcher.start() is ExitCode.OK
        assert supervisor.dispatched == [42]

    @pytest.mark.asyncio
    async def test_permanent_error_fast_path(self, make_settings):
        """인증 오류: 재시도 한도를 쓰지 않고 즉시 exit 1"""
        settings = make_settings(MULTIFLEXI_RECONNECT_ATTEMPTS=5)
        opener = FakeOpener(Exception(1045, "Access denied for user 'multiflexi'@'localhost'"))
        dispatcher = Dispatcher(settings, supervisor=FakeSupervisor(), store_opener=opener)

        code = await dispatcher.start()

        assert code is ExitCode.FATAL
        assert opener.calls == 1

    @pytest.mark.asyncio
    async def test_transient_errors_exhaust_budget(self, make_settings):
        settings = make_settings(MULTIFLEXI_RECONNECT_ATTEMPTS=3)
        opener = FakeOpener(ConnectionRefusedError("Connection refused"))
        dispatcher = Dispatcher(settings, supervisor=FakeSupervisor(), store_opener=opener)

        code = await dispatcher.start()

        assert code is ExitCode.FATAL
        assert opener.calls == 3

    @pytest.mark.asyncio
    async def test_failed_round_trip_closes_store(self, one_shot):
        """연결은 됐지만 due 왕복이 실패하면 닫고 재시도"""
        broken = FakeStore(Exception(2013, "Lost connection to MySQL server during query"))
        good = FakeStore(entries(42))
        supervisor = FakeSupervisor()
        opener = FakeOpener(broken, good)
        dispatcher = Dispatcher(one_shot, supervisor=supervisor, store_opener=opener)

        code = await dispatcher.start()

        assert code is ExitCode.OK
        assert broken.closed is True
        assert opener.calls == 2
        assert supervisor.dispatched == [42]

    @pytest.mark.asyncio
    async def test_transient_error_while_polling_reconnects(self, one_shot):
        """POLLING 중 일시 오류 -> AWAITING_STORE -> 새 저장소"""
        first = FakeStore([], ConnectionResetError("server closed the connection unexpectedly"))
        second = FakeStore(entries(42))
        supervisor = FakeSupervisor()
        opener = FakeOpener(first, second)
        dispatcher = Dispatcher(one_shot, supervisor=supervisor, store_opener=opener)

        code = await dispatcher.start()

        assert code is ExitCode.OK
        assert first.closed is True
        assert opener.calls == 2
        assert supervisor.dispatched == [42]

    @pytest.mark.asyncio
    async def test_unknown_error_while_polling_is_fatal_after_budget(self, one_shot):
        """미분류 오류: 재연결로 전환, 계속 실패하면 재연결 한도 소진 후 exit 1"""
        store = FakeStore([], RuntimeError("unexpected driver state"))
        supervisor = FakeSupervisor()
        opener = FakeOpener(store)
        dispatcher = Dispatcher(one_shot, supervisor=supervisor, store_opener=opener)

        code = await dispatcher.start()

        assert code is ExitCode.FATAL
        assert opener.calls == 1 + 3
        assert supervisor.dispatched == []

    @pytest.mark.asyncio
    async def test_permanent_error_while_polling(self, one_shot):
        store = FakeStore([], Exception("FATAL: password authentication failed for user \"multiflexi\""))
        supervisor = FakeSupervisor()
        dispatcher = Dispatcher(one_shot, supervisor=supervisor, store_opener=FakeOpener(store))

        code = await dispatcher.start()

        assert code is ExitCode.FATAL
        assert supervisor.dispatched == []

    @pytest.mark.asyncio
    async def test_job_error_does_not_stop_loop(self, one_shot):
        supervisor = FakeSupervisor(fail_jobs={42})
        dispatcher = Dispatcher(
            one_shot, supervisor=supervisor, store_opener=FakeOpener(FakeStore(entries(42, 43)))
        )

        code = await dispatcher.start()

        assert code is ExitCode.OK
        assert supervisor.dispatched == [43]

    @pytest.mark.asyncio
    async def test_stop_interrupts_cycle_pause(self, make_settings):
        settings = make_settings(MULTIFLEXI_CYCLE_PAUSE=60, MULTIFLEXI_SHUTDOWN_TIMEOUT=7)
        store = FakeStore(entries(42))
        supervisor = FakeSupervisor()
        dispatcher = Dispatcher(settings, supervisor=supervisor, store_opener=FakeOpener(store))

        task = asyncio.create_task(dispatcher.start())
        await asyncio.sleep(0.1)
        await dispatcher.stop()
        code = await asyncio.wait_for(task, timeout=2)

        assert code is ExitCode.OK
        assert store.due_calls >= 2
        assert supervisor.stopping is True
        assert supervisor.drain_timeout == 7

    @pytest.mark.asyncio
    async def test_unsupported_engine_is_fatal(self, make_settings):
        settings = make_settings(DB_CONNECTION="oracle")
        dispatcher = Dispatcher(settings, supervisor=FakeSupervisor())

        assert await dispatcher.start() is ExitCode.FATAL


class TestSqliteIntegration:
    """실제 SQLite 저장소 + 동기 실행"""

    @pytest.mark.asyncio
    async def test_one_shot_runs_due_jobs(self, make_settings, db_execute, db_fetch):
        settings = make_settings(MULTIFLEXI_DAEMONIZE="false", MULTIFLEXI_PROCESS_ISOLATION="false")
        due_job = await db_execute("INSERT INTO job (command) VALUES ('echo due')")
        future_job = await db_execute("INSERT INTO job (command) VALUES ('echo later')")
        await db_execute("""INSERT INTO schedule ("after", job) VALUES (datetime('now', '-1 minute'), ?)""", (due_job,))
        await db_execute("""INSERT INTO schedule ("after", job) VALUES (datetime('now', '+1 hour'), ?)""", (future_job,))

        code = await Dispatcher(settings).start()

        assert code is ExitCode.OK
        remaining = await db_fetch("SELECT job FROM schedule")
        assert remaining == [{"job": future_job}]
        jobs = await db_fetch("SELECT id, stdout FROM job ORDER BY id")
        assert jobs == [{"id": due_job, "stdout": "due\n"}, {"id": future_job, "stdout": None}]

    @pytest.mark.asyncio
    async def test_one_shot_waits_for_long_running_worker(self, make_settings, db_execute, db_fetch):
        """one-shot 종료는 shutdown timeout보다 오래 걸리는 job도 끝까지 기다림"""
        settings = make_settings(MULTIFLEXI_DAEMONIZE="false", MULTIFLEXI_SHUTDOWN_TIMEOUT=1)
        job_id = await db_execute("INSERT INTO job (command) VALUES ('sleep 3; echo finished')")
        await db_execute("""INSERT INTO schedule ("after", job) VALUES (datetime('now', '-1 minute'), ?)""", (job_id,))

        code = await asyncio.wait_for(Dispatcher(settings).start(), timeout=60)

        assert code is ExitCode.OK
        rows = await db_fetch("SELECT exitcode, stdout FROM job WHERE id = ?", (job_id,))
        assert rows == [{"exitcode": 0, "stdout": "finished\n"}]
        assert await db_fetch("SELECT id FROM schedule") == []


class TestEntryPoint:
    """콘솔 진입점 테스트"""

    def test_missing_config_file_exits_fatal(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            run(["--config", str(tmp_path / "missing.yaml"), "--env-file", str(tmp_path / ".env")])

        assert exc_info.value.code == int(ExitCode.FATAL)
