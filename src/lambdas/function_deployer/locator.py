# src/lambdas/function_deployer/locator.py
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from src.models.deployment import ArtifactReference
from .aws_clients import s3
from .config import ConfigurationError

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def locate_artifact(bucket: str, key: str, version: Optional[str] = None) -> ArtifactReference:
    """Build the package reference; existence is only checked at update time."""
    bucket = (bucket or "").strip()
    key = (key or "").strip()
    if not bucket:
        raise ConfigurationError("DEPLOYMENT_PACKAGE_BUCKET is empty")
    if not key:
        raise ConfigurationError("DEPLOYMENT_PACKAGE_KEY is empty")
    return ArtifactReference(bucket_name=bucket, object_key=key, object_version=version or None)


def artifact_from_job(job_data: Dict[str, Any], artifact_name: Optional[str] = None) -> Optional[ArtifactReference]:
    """
    Read the S3 location of an input artifact from CodePipeline job data:
      {"inputArtifacts": [{"name": "BuildOutput",
                           "location": {"type": "S3",
                                        "s3Location": {"bucketName": "...", "objectKey": "..."}}}]}
    Returns None when the job carries no S3 input artifact.
    """
    for artifact in (job_data or {}).get("inputArtifacts") or []:
        if artifact_name and artifact.get("name") != artifact_name:
            continue
        location = artifact.get("location") or {}
        s3_location = location.get("s3Location") or {}
        if location.get("type", "S3") != "S3" or not s3_location:
            continue
        return locate_artifact(s3_location.get("bucketName", ""), s3_location.get("objectKey", ""))
    return None


def artifact_exists(artifact: ArtifactReference, client=None) -> bool:
    kwargs = {"Bucket": artifact.bucket_name, "Key": artifact.object_key}
    if artifact.object_version:
        kwargs["VersionId"] = artifact.object_version
    try:
        (client or s3()).head_object(**kwargs)
        return True
    except ClientError as e:
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in _MISSING_CODES:
            logger.warning("Deployment package not found: %s", artifact.uri)
            return False
        raise
