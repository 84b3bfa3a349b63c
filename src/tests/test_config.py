import pytest

from src.lambdas.function_deployer.config import (
    DEFAULT_DESCRIPTION,
    ConfigurationError,
    load_config,
    parse_user_parameters,
)
from src.models.deployment import ArtifactReference

BASE_ENV = {
    "DEPLOYMENT_PACKAGE_BUCKET": "pkg-bucket",
    "DEPLOYMENT_PACKAGE_KEY": "v42.zip",
    "FUNCTIONS_TO_DEPLOY": "fnA,fnB",
}


def test_defaults_from_environment():
    cfg = load_config(BASE_ENV)
    assert (cfg.bucket, cfg.key, cfg.version, cfg.functions) == ("pkg-bucket", "v42.zip", None, "fnA,fnB")
    assert cfg.allow_empty_targets is False and cfg.check_artifact is False
    assert cfg.description == DEFAULT_DESCRIPTION
    assert (cfg.waiter_delay, cfg.waiter_max_attempts, cfg.max_retries) == (5, 60, 5)
    assert cfg.log_level == "INFO"


def test_reads_os_environ(monkeypatch):
    for name, value in BASE_ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv("CHECK_ARTIFACT", "TRUE")
    monkeypatch.setenv("WAITER_DELAY", "2")
    cfg = load_config()
    assert cfg.bucket == "pkg-bucket"
    assert cfg.check_artifact is True
    assert cfg.waiter_delay == 2


@pytest.mark.parametrize("name,value", [
    ("WAITER_DELAY", "soon"),
    ("WAITER_MAX_ATTEMPTS", "0"),
    ("MAX_RETRIES", "-1"),
    ("LOG_LEVEL", "LOUD"),
])
def test_bad_values_are_configuration_errors(name, value):
    with pytest.raises(ConfigurationError, match=name):
        load_config({**BASE_ENV, name: value})


def test_user_parameters_json_overrides():
    cfg = load_config(BASE_ENV, '{"functions": ["fnC", "fnD"], "key": "v43.zip", "description": "hotfix"}')
    assert cfg.functions == "fnC,fnD"
    assert cfg.key == "v43.zip"
    assert cfg.bucket == "pkg-bucket"
    assert cfg.description == "hotfix"


def test_plain_user_parameters_are_a_function_list():
    assert parse_user_parameters("fnA, fnB") == {"functions": "fnA, fnB"}
    assert load_config(BASE_ENV, "fnZ").functions == "fnZ"


@pytest.mark.parametrize("raw", ['{"functions": ', '{"functions": 7}'])
def test_malformed_user_parameters(raw):
    with pytest.raises(ConfigurationError):
        parse_user_parameters(raw)


def test_blank_user_parameters_change_nothing():
    assert parse_user_parameters(None) == {}
    assert parse_user_parameters("   ") == {}


def test_input_artifact_used_only_when_enabled():
    job_artifact = ArtifactReference("codepipeline-artifacts", "run/BuildOutput/abc.zip", "v1")

    assert load_config(BASE_ENV, job_artifact=job_artifact).bucket == "pkg-bucket"

    cfg = load_config({**BASE_ENV, "USE_INPUT_ARTIFACT": "true"}, job_artifact=job_artifact)
    assert (cfg.bucket, cfg.key, cfg.version) == ("codepipeline-artifacts", "run/BuildOutput/abc.zip", "v1")


@pytest.mark.parametrize("user_parameters", ['{"key": "v43.zip"}', '{"bucket": "other-bucket"}'])
def test_overriding_the_package_drops_the_env_version(user_parameters):
    cfg = load_config({**BASE_ENV, "DEPLOYMENT_PACKAGE_VERSION": "ver-of-v42"}, user_parameters)
    assert cfg.version is None


def test_explicit_version_survives_a_key_override():
    cfg = load_config({**BASE_ENV, "DEPLOYMENT_PACKAGE_VERSION": "ver-of-v42"},
                      '{"key": "v43.zip", "version": "ver-of-v43"}')
    assert (cfg.key, cfg.version) == ("v43.zip", "ver-of-v43")


def test_function_override_keeps_the_env_version():
    cfg = load_config({**BASE_ENV, "DEPLOYMENT_PACKAGE_VERSION": "ver-of-v42"}, '{"functions": "fnC"}')
    assert cfg.version == "ver-of-v42"
