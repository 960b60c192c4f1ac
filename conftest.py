import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

User = get_user_model()
TEST_PASSWORD = "password"  # noqa: S105


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="alice", email="alice@example.com", password=TEST_PASSWORD
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        username="bob", email="bob@example.com", password=TEST_PASSWORD
    )


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def hub(monkeypatch, settings):
    from taskboard.realtime import socketio as realtime_socketio  # noqa: PLC0415
    from tests.fakes import InMemoryHub  # noqa: PLC0415

    settings.REALTIME_REQUIRE_AUTH = False
    return InMemoryHub(realtime_socketio, monkeypatch)
