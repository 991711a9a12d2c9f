import os

import pytest

pytest_plugins = ["pytester"]

# Global configuration for all cloudspec tests (unit and integration).


@pytest.fixture(scope="session", autouse=True)
def setup_global_test_environment():
    """Dummy AWS credentials so nothing ever reaches a real account"""

    # An inherited AWS_PROFILE makes boto3 prefer SSO over the dummy keys
    if "AWS_PROFILE" in os.environ:
        del os.environ["AWS_PROFILE"]

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"

    os.environ.setdefault("LOG_LEVEL", "DEBUG")
    os.environ.setdefault("POWERTOOLS_DEV", "true")

    yield


@pytest.fixture(autouse=True)
def reset_cloudspec_singletons():
    """Settings, clients and default matchers are process-wide caches"""
    from cloudspec.common.aws_clients import reset_clients
    from cloudspec.common.config import reset_settings
    from cloudspec.services.assertions.matchers import reset_matchers

    reset_settings()
    reset_clients()
    reset_matchers()
    yield
    reset_settings()
    reset_clients()
    reset_matchers()


@pytest.fixture
def settings(tmp_path):
    from cloudspec.common.config import CloudSpecSettings

    return CloudSpecSettings(region="us-east-1", outdir=str(tmp_path / "out"))
