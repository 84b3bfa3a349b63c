import dataclasses

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from src.lambdas.function_deployer.config import ConfigurationError
from src.lambdas.function_deployer.locator import artifact_exists, artifact_from_job, locate_artifact
from src.models.deployment import ArtifactReference
from src.tests.fakes import client_error, pipeline_event


def test_locate_artifact():
    ref = locate_artifact("pkg-bucket", "v42.zip")
    assert ref == ArtifactReference("pkg-bucket", "v42.zip")
    assert ref.uri == "s3://pkg-bucket/v42.zip"
    assert ref.code_location() == {"S3Bucket": "pkg-bucket", "S3Key": "v42.zip"}


def test_locate_artifact_with_version():
    ref = locate_artifact(" pkg-bucket ", "v42.zip", "3HL4kqtJlcpXroDTDmJ")
    assert ref.bucket_name == "pkg-bucket"
    assert ref.code_location()["S3ObjectVersion"] == "3HL4kqtJlcpXroDTDmJ"


@pytest.mark.parametrize("bucket,key,missing", [
    ("", "v42.zip", "BUCKET"),
    ("pkg-bucket", "", "KEY"),
    ("  ", "v42.zip", "BUCKET"),
])
def test_empty_fields_raise(bucket, key, missing):
    with pytest.raises(ConfigurationError, match=missing):
        locate_artifact(bucket, key)


def test_artifact_reference_is_immutable():
    ref = locate_artifact("pkg-bucket", "v42.zip")
    with pytest.raises(dataclasses.FrozenInstanceError):
        ref.object_key = "v43.zip"


def test_artifact_from_job():
    job = pipeline_event(artifact={"bucket": "codepipeline-artifacts", "key": "run/BuildOutput/abc.zip"})
    data = job["CodePipeline.job"]["data"]
    ref = artifact_from_job(data)
    assert ref == ArtifactReference("codepipeline-artifacts", "run/BuildOutput/abc.zip")
    assert artifact_from_job(data, "BuildOutput") == ref
    assert artifact_from_job(data, "OtherOutput") is None


def test_artifact_from_job_without_artifacts():
    assert artifact_from_job({}) is None
    assert artifact_from_job(pipeline_event()["CodePipeline.job"]["data"]) is None


@mock_aws
def test_artifact_exists(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    s3 = boto3.client("s3", region_name="us-east-1")
    s3.create_bucket(Bucket="pkg-bucket")
    s3.put_object(Bucket="pkg-bucket", Key="v42.zip", Body=b"PK\x03\x04")

    assert artifact_exists(locate_artifact("pkg-bucket", "v42.zip"), client=s3) is True
    assert artifact_exists(locate_artifact("pkg-bucket", "v43.zip"), client=s3) is False


def test_artifact_exists_propagates_other_errors():
    class DeniedS3:
        def head_object(self, **kwargs):
            raise client_error("403", "Forbidden", "HeadObject")

    with pytest.raises(ClientError, match="403"):
        artifact_exists(locate_artifact("pkg-bucket", "v42.zip"), client=DeniedS3())
