import os, boto3

def _region() -> str:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or "us-east-1"

def _client(service: str, endpoint_var: str, session=None):
    region = (session.region_name if session is not None else None) or _region()
    kwargs = {"region_name": region}
    # LocalStack / moto server
    ep = os.environ.get(endpoint_var) or os.environ.get("AWS_ENDPOINT_URL")
    if ep: kwargs["endpoint_url"] = ep
    return (session or boto3).client(service, **kwargs)

def s3(session=None):
    return _client("s3", "AWS_ENDPOINT_URL_S3", session)

def lambda_(session=None):
    return _client("lambda", "AWS_ENDPOINT_URL_LAMBDA", session)

def codepipeline(session=None):
    return _client("codepipeline", "AWS_ENDPOINT_URL_CODEPIPELINE", session)
