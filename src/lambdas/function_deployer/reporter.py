# src/lambdas/function_deployer/reporter.py
from __future__ import annotations

import logging
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from src.models.deployment import JobFailureResult, JobSuccessResult, RunResult, Status, TerminalSignal
from .aws_clients import codepipeline

logger = logging.getLogger(__name__)

# PutJobFailureResult rejects longer messages
MAX_MESSAGE_LENGTH = 5000
CONFIG_ERROR_PREFIX = "Configuration error"
_ELLIPSIS = "..."


class ReportingFailure(RuntimeError):
    """The terminal signal could not be delivered to CodePipeline."""


def _truncate(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def build_signal(result: RunResult) -> TerminalSignal:
    total = len(result.outcomes)
    if result.overall is Status.SUCCESS:
        return JobSuccessResult(f"Updated {total}/{total} functions.")
    failures = "; ".join(f"{o.target}: {o.detail or 'update failed'}" for o in result.failed)
    return JobFailureResult(_truncate(failures))


def signal_for_error(exc: Exception) -> JobFailureResult:
    return JobFailureResult(_truncate(f"{CONFIG_ERROR_PREFIX}: {exc}"))


class PipelineReporter:
    """
    Delivers the single terminal signal for one CodePipeline job.
    Without a job id (direct invoke, CLI) the signal is only logged.
    """

    def __init__(self, job_id: Optional[str] = None, client=None, execution_id: Optional[str] = None):
        self.job_id = job_id
        self.execution_id = execution_id
        self._client = client
        self.sent: Optional[TerminalSignal] = None

    @property
    def client(self):
        if self._client is None:
            self._client = codepipeline()
        return self._client

    def report(self, outcome: Union[RunResult, TerminalSignal]) -> TerminalSignal:
        if self.sent is not None:
            raise ReportingFailure(f"terminal signal already sent for job {self.job_id}")

        signal = build_signal(outcome) if isinstance(outcome, RunResult) else outcome
        if len(signal.message) > MAX_MESSAGE_LENGTH:
            signal = type(signal)(_truncate(signal.message))
        # one attempt per job, even when delivery fails
        self.sent = signal

        if not self.job_id:
            logger.info("No CodePipeline job id; %s: %s", signal.status.value, signal.message)
            return signal

        try:
            if isinstance(signal, JobSuccessResult):
                self.client.put_job_success_result(
                    jobId=self.job_id,
                    executionDetails=self._execution_details(signal.message),
                )
            else:
                failure = {"type": "JobFailed", "message": signal.message}
                if self.execution_id:
                    failure["externalExecutionId"] = self.execution_id
                self.client.put_job_failure_result(jobId=self.job_id, failureDetails=failure)
        except (ClientError, BotoCoreError) as e:
            logger.error("Could not report job %s to CodePipeline: %s", self.job_id, e)
            raise ReportingFailure(f"failed to report job {self.job_id}: {e}") from e

        logger.info("Reported job %s as %s: %s", self.job_id, signal.status.value, signal.message)
        return signal

    def _execution_details(self, message: str):
        details = {"summary": _truncate(message, 2048)}
        if self.execution_id:
            details["externalExecutionId"] = self.execution_id
        return details
