# src/lambdas/function_deployer/config.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from src.models.deployment import ArtifactReference
from .common import env

DEFAULT_DESCRIPTION = "Deployed by CodePipeline"


class ConfigurationError(ValueError):
    """Raised when required invocation input is missing or malformed."""


@dataclass(frozen=True)
class DeployerConfig:
    bucket: str = ""
    key: str = ""
    version: Optional[str] = None
    functions: str = ""
    allow_empty_targets: bool = False
    use_input_artifact: bool = False
    check_artifact: bool = False
    description: str = DEFAULT_DESCRIPTION
    waiter_delay: int = 5
    waiter_max_attempts: int = 60
    max_retries: int = 5
    log_level: str = "INFO"


def _flag(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    return environ.get(name, "true" if default else "false").strip().lower() == "true"


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def parse_user_parameters(raw: Optional[str]) -> Dict[str, Any]:
    """
    CodePipeline hands UserParameters over as an opaque string.
    A JSON object is read as per-run overrides, e.g.
      {"functions": ["fnA", "fnB"], "key": "builds/v42.zip"}
    anything else is taken as a comma-separated function list.
    """
    if raw is None or not raw.strip():
        return {}
    text = raw.strip()
    if not text.startswith("{"):
        return {"functions": text}
    try:
        params = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"UserParameters is not valid JSON: {e}") from e
    if not isinstance(params, dict):
        raise ConfigurationError("UserParameters must be a JSON object")

    functions = params.get("functions")
    if isinstance(functions, list):
        params["functions"] = ",".join(str(f) for f in functions)
    elif functions is not None and not isinstance(functions, str):
        raise ConfigurationError("UserParameters 'functions' must be a string or a list")
    return params


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    user_parameters: Optional[str] = None,
    job_artifact: Optional[ArtifactReference] = None,
) -> DeployerConfig:
    """
    Build the per-invocation config. Precedence, lowest first:
    environment -> the job's input artifact (USE_INPUT_ARTIFACT=true) -> UserParameters.
    Nothing is validated for emptiness here; the locator and registry do that.
    """
    if environ is None:
        environ = os.environ

    cfg = DeployerConfig(
        bucket=environ.get("DEPLOYMENT_PACKAGE_BUCKET", "").strip(),
        key=environ.get("DEPLOYMENT_PACKAGE_KEY", "").strip(),
        version=environ.get("DEPLOYMENT_PACKAGE_VERSION", "").strip() or None,
        functions=environ.get("FUNCTIONS_TO_DEPLOY", ""),
        allow_empty_targets=_flag(environ, "ALLOW_EMPTY_TARGETS"),
        use_input_artifact=_flag(environ, "USE_INPUT_ARTIFACT"),
        check_artifact=_flag(environ, "CHECK_ARTIFACT"),
        description=environ.get("PUBLISH_DESCRIPTION", "").strip() or DEFAULT_DESCRIPTION,
        waiter_delay=_positive_int(environ, "WAITER_DELAY", 5),
        waiter_max_attempts=_positive_int(environ, "WAITER_MAX_ATTEMPTS", 60),
        max_retries=_positive_int(environ, "MAX_RETRIES", 5),
        log_level=_log_level(environ.get("LOG_LEVEL")),
    )

    if cfg.use_input_artifact and job_artifact is not None:
        cfg = replace(cfg, bucket=job_artifact.bucket_name, key=job_artifact.object_key,
                      version=job_artifact.object_version)

    params = parse_user_parameters(user_parameters)
    overrides: Dict[str, Any] = {}
    for name in ("bucket", "key", "version", "functions", "description"):
        if params.get(name) is not None:
            overrides[name] = str(params[name]).strip() if name != "functions" else params[name]
    # an env VersionId belongs to the env object, not to an overridden one
    if ("bucket" in overrides or "key" in overrides) and "version" not in overrides:
        overrides["version"] = None
    if overrides:
        cfg = replace(cfg, **overrides)
    return cfg


def _log_level(raw: Optional[str]) -> str:
    level = (raw or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"LOG_LEVEL {raw!r} is not a logging level")
    return level


def log_level_from_env() -> str:
    try:
        return _log_level(env("LOG_LEVEL"))
    except ConfigurationError:
        return "INFO"
