import logging
from typing import Any, Dict, Optional

from src.models.deployment import JobFailureResult, RunResult
from .aws_clients import s3
from .common import ok, err
from .config import ConfigurationError, load_config, log_level_from_env
from .dispatcher import FunctionUpdater, dispatch
from .locator import artifact_from_job, locate_artifact
from .registry import parse_targets
from .reporter import CONFIG_ERROR_PREFIX, PipelineReporter, signal_for_error

logger = logging.getLogger()

JOB_KEY = "CodePipeline.job"


def _job(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event or {}).get(JOB_KEY) or {}


def _user_parameters(job: Dict[str, Any]) -> Optional[str]:
    data = job.get("data") or {}
    config = (data.get("actionConfiguration") or {}).get("configuration") or {}
    return config.get("UserParameters")


def run(event: Dict[str, Any], context=None, *, updater=None, reporter=None, s3_client=None, environ=None):
    """
    Load config, dispatch, and report exactly once. Returns (signal, result);
    result is None when the run stopped on a configuration error.
    ReportingFailure is the only exception that leaves this function.
    """
    job = _job(event)
    job_id = job.get("id")
    if reporter is None:
        reporter = PipelineReporter(job_id, execution_id=getattr(context, "aws_request_id", None))

    result: Optional[RunResult] = None
    try:
        cfg = load_config(environ, _user_parameters(job), artifact_from_job(job.get("data") or {}))
        logger.setLevel(cfg.log_level)
        artifact = locate_artifact(cfg.bucket, cfg.key, cfg.version)
        targets = parse_targets(cfg.functions, allow_empty=cfg.allow_empty_targets)
    except ConfigurationError as e:
        logger.error("Configuration error for job %s: %s", job_id, e)
        return reporter.report(signal_for_error(e)), None

    try:
        updater = updater or FunctionUpdater(
            description=cfg.description,
            waiter_delay=cfg.waiter_delay,
            waiter_max_attempts=cfg.waiter_max_attempts,
            max_retries=cfg.max_retries,
        )
        result = dispatch(
            artifact,
            targets,
            updater,
            check_artifact=cfg.check_artifact,
            allow_empty=cfg.allow_empty_targets,
            s3_client=s3_client or (s3() if cfg.check_artifact else None),
        )
    except Exception as e:
        # keep the pipeline from waiting on a signal that never comes
        logger.exception("Deployment run for job %s aborted", job_id)
        return reporter.report(JobFailureResult(f"{type(e).__name__}: {e}")), None

    return reporter.report(result), result


def lambda_handler(event, context):
    """
    Entry point for the CodePipeline Invoke action. The event looks like
      {"CodePipeline.job": {"id": "...", "data": {"actionConfiguration": {...},
                                                   "inputArtifacts": [...]}}}
    but a bare {} also works when the package and targets come from env vars.
    """
    logger.setLevel(log_level_from_env())
    logger.info("Received job %s", _job(event).get("id"))

    signal, result = run(event, context)
    body = {"message": signal.message, "status": signal.status.value}
    if result is not None:
        body.update(result.to_dict())
        if result.failed:
            return err(signal.message, 500, **body)
        return ok(body)
    code = 400 if signal.message.startswith(CONFIG_ERROR_PREFIX) else 500
    return err(signal.message, code, **body)
