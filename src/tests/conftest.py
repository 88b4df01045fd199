import os
import tempfile
import threading
from unittest.mock import MagicMock

import pytest

from . import utils


def pytest_sessionstart(session):  # noqa: ANN201, ARG001, ANN001
    log_dir = tempfile.mkdtemp(prefix="aws-groups-manager-tests-")
    mock_env = {
        "LOG_LEVEL": "DEBUG",
        "LOG_FILE": os.path.join(log_dir, "tests.log"),
        "poll_interval_seconds": "2",
        "membership_lookup_concurrency": "4",
        "dispatcher_workers": "2",
    }
    os.environ |= mock_env
    for name in ("AWS_PROFILE", "AWS_REGION", "AWS_DEFAULT_REGION", "AWS_CONFIG_FILE", "AWS_SHARED_CREDENTIALS_FILE"):
        os.environ.pop(name, None)


@pytest.fixture
def instance():
    from entities.aws import Instance

    return Instance(
        arn="arn:aws:sso:::instance/ssoins-1111111111111111",
        identity_store_id="d-1111111111",
        display_name="main",
    )


@pytest.fixture
def identity_store_client():
    """Mock identitystore client with empty paginators."""
    client = MagicMock()
    client.get_paginator.return_value = utils.paginator([])
    return client


@pytest.fixture
def sso_client():
    """Mock sso-admin client with empty paginators."""
    client = MagicMock()
    client.get_paginator.return_value = utils.paginator([])
    return client


@pytest.fixture
def org_client():
    client = MagicMock()
    client.get_paginator.return_value = utils.paginator([])
    return client


@pytest.fixture
def gateway(instance, identity_store_client, sso_client, org_client):
    """Gateway with mock clients and a bound instance, as after a successful session establishment."""
    from gateway import Gateway

    gw = Gateway("dev", "eu-central-1", session_factory=MagicMock(), login=MagicMock(), poll_interval_seconds=2)
    gw.identity_store_client = identity_store_client
    gw.sso_client = sso_client
    gw.org_client = org_client
    gw.instance = instance
    return gw


@pytest.fixture
def cancel():
    return threading.Event()
