"""셸 명령 러너

job.command 를 셸로 실행하고 종료 코드/출력을 job 행에 기록합니다.
"""

import asyncio
import logging
from pathlib import Path

from aiosql.queries import Queries

from worker.base import JobRunner, runner
from worker.model import ExecutionResult

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "command.sql"


@runner("command")
class CommandJobRunner(JobRunner):
    """job.command 셸 실행 러너"""

    def __init__(self, connections):
        super().__init__(connections)
        self._queries: Queries = connections.dialect.load_queries(SQL_PATH)

    async def _get_job(self, job_ref: int):
        return await self._queries.get_job(await self.connection(), id=job_ref)

    async def exists(self, job_ref: int) -> bool:
        return await self._get_job(job_ref) is not None

    async def run(self, job_ref: int) -> ExecutionResult:
        row = await self._get_job(job_ref)
        if row is None:
            return ExecutionResult(exit_code=127, stderr=f"Job {job_ref} not found")

        command = row["command"]
        if not command:
            return ExecutionResult(exit_code=127, stderr=f"Job {job_ref} has no command")

        logger.info(f"CommandJobRunner: job {job_ref} running: {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        result = ExecutionResult(
            exit_code=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

        await self._queries.record_result(
            await self.connection(),
            id=job_ref,
            exitcode=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )
        logger.info(f"CommandJobRunner: job {job_ref} finished with exit code {result.exit_code}")
        return result
