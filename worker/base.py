import importlib
import logging
import pkgutil
from abc import ABC, abstractmethod

from database import ConnectionFactory
from worker.exception import RunnerNotFoundError
from worker.model import ExecutionResult

__all__ = [
    'runner',
    'get_runner',
    'get_registered_runners',
    'load_runners',
    'JobRunner',
    'RunnerNotFoundError',
]

logger = logging.getLogger(__name__)

# 러너 레지스트리 (모듈 레벨)
_registry: dict[str, type["JobRunner"]] = {}


def runner(name: str):
    """JobRunner 등록 데코레이터"""
    def decorator(cls):
        _registry[name] = cls
        return cls
    return decorator


def get_runner(name: str) -> type["JobRunner"]:
    """
    JobRunner 클래스 반환

    Args:
        name: 등록된 이름 또는 'module:Class' 경로
    """
    if name in _registry:
        return _registry[name]

    if ':' in name:
        module_name, _, class_name = name.partition(':')
        try:
            module = importlib.import_module(module_name)
            cls = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise RunnerNotFoundError(name) from e
        if not (isinstance(cls, type) and issubclass(cls, JobRunner)):
            raise RunnerNotFoundError(name)
        return cls

    raise RunnerNotFoundError(name)


def get_registered_runners() -> dict[str, type["JobRunner"]]:
    """등록된 러너 목록 반환 (테스트용)"""
    return _registry.copy()


def load_runners() -> None:
    """러너 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    from worker import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded runner module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "worker.job")


class JobRunner(ABC):
    """
    Job 실행기 기본 클래스

    워커의 실행 시도마다 새로 생성되며, 워커 전용 ConnectionFactory로
    자신의 연결을 엽니다. 감독자/루프의 연결은 절대 사용하지 않습니다.
    """

    def __init__(self, connections: ConnectionFactory):
        self._connections = connections
        self._connection = None

    async def connection(self):
        """생존 확인된 드라이버 연결 (끊겼으면 재연결)"""
        self._connection = await self._connections.ensure(self._connection)
        return self._connection.driver()

    @abstractmethod
    async def exists(self, job_ref: int) -> bool:
        """job 데이터 존재 여부"""
        pass

    @abstractmethod
    async def run(self, job_ref: int) -> ExecutionResult:
        """
        job 실행 (완료까지 대기)

        Returns:
            ExecutionResult (종료 코드가 0이 아니어도 예외가 아님)

        Raises:
            Exception: 실행 경로 자체가 실패한 경우 (DB 오류 등)
        """
        pass

    async def cleanup(self, job_ref: int) -> None:
        """실행 후 정리 (기본: 없음)"""
        pass

    async def close(self) -> None:
        """러너 연결 해제"""
        await self._connections.close(self._connection)
        self._connection = None
