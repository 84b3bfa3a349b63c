# src/lambdas/function_deployer/dispatcher.py
from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    WaiterError,
)

from src.models.deployment import ArtifactReference, RunResult, Status, TargetList, UpdateOutcome
from .aws_clients import lambda_
from .config import DEFAULT_DESCRIPTION, ConfigurationError
from .locator import artifact_exists

logger = logging.getLogger(__name__)

RETRYABLE_CODES = (
    "ThrottlingException",
    "TooManyRequestsException",
    "Throttling",
    "ResourceConflictException",  # previous update still in progress
)
TRANSIENT_ERRORS = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError, ConnectTimeoutError)

STEP_UPDATE = "update code"
STEP_WAIT = "wait for update"
STEP_PUBLISH = "publish"


class TargetUpdateFailure(RuntimeError):
    """One target's update or publish step failed; recorded, never raised out of dispatch()."""

    def __init__(self, target: str, step: str, detail: str):
        super().__init__(detail)
        self.target = target
        self.step = step
        self.detail = detail


def describe_error(step: str, exc: Exception) -> str:
    if isinstance(exc, (ReadTimeoutError, ConnectTimeoutError)):
        return f"{step} timed out"
    if isinstance(exc, WaiterError):
        if "Max attempts exceeded" in str(exc):
            return f"{step} timed out"
        resp = exc.last_response or {}
        reason = resp.get("LastUpdateStatusReason") or resp.get("Configuration", {}).get("LastUpdateStatusReason")
        return f"{step} failed: {reason or exc}"
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return f"{step} failed: {error.get('Code', 'ClientError')}: {error.get('Message', '')}".rstrip(": ")
    return f"{step} failed: {exc}"


def call_with_backoff(func: Callable[..., Any], *args, max_retries: int = 5, base_delay: float = 0.5,
                      sleep: Callable[[float], None] = time.sleep, **kwargs) -> Any:
    """
    Retry throttling and connection errors with full-jitter exponential backoff.
    max_retries counts retries, so the call is attempted up to max_retries + 1 times.
    """
    attempts = max(max_retries, 0) + 1
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code not in RETRYABLE_CODES or attempt == attempts:
                raise
            delay = random.uniform(0, base_delay * (2 ** (attempt - 1)))
            logger.warning("%s on attempt %d, retrying in %.3fs", code, attempt, delay)
            sleep(delay)
        except TRANSIENT_ERRORS as e:
            if attempt == attempts:
                raise
            delay = random.uniform(0, base_delay * (2 ** (attempt - 1)))
            logger.warning("Transient error on attempt %d: %s. Retrying in %.3fs", attempt, e, delay)
            sleep(delay)


class FunctionUpdater:
    """Runs update-code -> wait -> publish-version for one Lambda function at a time."""

    def __init__(
        self,
        client=None,
        *,
        description: str = DEFAULT_DESCRIPTION,
        waiter_delay: int = 5,
        waiter_max_attempts: int = 60,
        max_retries: int = 5,
        base_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._lambda = client or lambda_()
        self.description = description
        self.waiter_config = {"Delay": waiter_delay, "MaxAttempts": waiter_max_attempts}
        self._retry = {"max_retries": max_retries, "base_delay": base_delay, "sleep": sleep}

    def update_code(self, target: str, artifact: ArtifactReference) -> Dict[str, Any]:
        return call_with_backoff(
            self._lambda.update_function_code,
            FunctionName=target,
            Publish=False,
            **artifact.code_location(),
            **self._retry,
        )

    def wait_until_updated(self, target: str) -> None:
        waiter = self._lambda.get_waiter("function_updated")
        waiter.wait(FunctionName=target, WaiterConfig=self.waiter_config)

    def publish(self, target: str, code_sha256: Optional[str]) -> Dict[str, Any]:
        kwargs = {"FunctionName": target, "Description": self.description}
        # pin the version to the code this run uploaded
        if code_sha256:
            kwargs["CodeSha256"] = code_sha256
        return call_with_backoff(self._lambda.publish_version, **kwargs, **self._retry)

    def deploy(self, target: str, artifact: ArtifactReference) -> UpdateOutcome:
        step = STEP_UPDATE
        try:
            logger.info("Updating %s from %s", target, artifact.uri)
            updated = self.update_code(target, artifact)
            sha = updated.get("CodeSha256")

            step = STEP_WAIT
            self.wait_until_updated(target)

            step = STEP_PUBLISH
            published = self.publish(target, sha)
        except (ClientError, WaiterError) + TRANSIENT_ERRORS as e:
            raise TargetUpdateFailure(target, step, describe_error(step, e)) from e

        version = published.get("Version")
        logger.info("Published %s version %s", target, version)
        return UpdateOutcome(
            target=target,
            status=Status.SUCCESS,
            version=str(version) if version is not None else None,
            code_sha256=published.get("CodeSha256") or sha,
        )


def dispatch(
    artifact: ArtifactReference,
    targets: TargetList,
    updater: Optional[FunctionUpdater] = None,
    *,
    check_artifact: bool = False,
    allow_empty: bool = False,
    s3_client=None,
) -> RunResult:
    """
    Roll the package out to every target in order. A failing target is
    recorded and the run carries on; only malformed input raises.
    """
    if artifact is None or not artifact.bucket_name or not artifact.object_key:
        raise ConfigurationError("deployment package bucket and key are required")
    if targets is None or (not targets and not allow_empty):
        raise ConfigurationError("no functions to deploy")
    targets = tuple(targets)

    logger.info("Deploying %s to %d function(s): %s", artifact.uri, len(targets), ", ".join(targets))

    if check_artifact and targets:
        try:
            found = artifact_exists(artifact, client=s3_client)
        except (ClientError,) + TRANSIENT_ERRORS as e:
            logger.warning("Could not verify %s (%s); leaving it to Lambda", artifact.uri, e)
            found = True
        if not found:
            detail = f"deployment package {artifact.uri} not found"
            return RunResult(tuple(UpdateOutcome(t, Status.FAILURE, detail) for t in targets))

    updater = updater or FunctionUpdater()
    outcomes: List[UpdateOutcome] = []
    for target in targets:
        try:
            outcome = updater.deploy(target, artifact)
        except TargetUpdateFailure as e:
            logger.error("%s: %s", target, e.detail)
            outcome = UpdateOutcome(target, Status.FAILURE, e.detail)
        except Exception as e:
            logger.exception("Unexpected error deploying %s", target)
            outcome = UpdateOutcome(target, Status.FAILURE, f"{type(e).__name__}: {e}")
        outcomes.append(outcome)

    result = RunResult(tuple(outcomes))
    logger.info("Run finished: %s (%d/%d succeeded)", result.overall.value,
                len(result.succeeded), len(outcomes))
    return result
