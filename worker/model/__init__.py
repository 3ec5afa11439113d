"""Worker 모델"""

from worker.model.executor import ExecutionOutcome, ExecutionResult, WorkerRecord

__all__ = ['ExecutionOutcome', 'ExecutionResult', 'WorkerRecord']
