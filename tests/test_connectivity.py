"""
Tests for the start-up connectivity check
"""

import pytest
import requests

from delivery_dashboard.services import connectivity
from delivery_dashboard.services.connectivity import ConnectivityError, ensure_online_connectivity, probe_url


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.closed = False

    def close(self):
        self.closed = True


class FakeSession:
    instances = []
    fail_with = None
    status_code = 405

    def __init__(self):
        self.headers = {}
        self.closed = False
        self.requests = []
        self.response = FakeResponse(FakeSession.status_code)
        FakeSession.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def head(self, url, timeout=None, allow_redirects=True):
        self.requests.append((url, timeout, allow_redirects))
        if FakeSession.fail_with is not None:
            raise FakeSession.fail_with
        return self.response


@pytest.fixture
def fake_session(monkeypatch):
    FakeSession.instances = []
    FakeSession.fail_with = None
    FakeSession.status_code = 405
    monkeypatch.setattr(connectivity.requests, "Session", FakeSession)
    return FakeSession


class TestProbeUrl:
    def test_targets_login_endpoint(self):
        assert probe_url("https://api.test/api/") == "https://api.test/api/auth/admin-login"

    def test_blank_endpoint(self):
        with pytest.raises(ConnectivityError, match="not configured"):
            probe_url("  ")


class TestEnsureOnlineConnectivity:
    def test_any_http_answer_counts_as_reachable(self, fake_session):
        assert ensure_online_connectivity("https://api.test/api", timeout=1.5) == 405
        session = fake_session.instances[0]
        assert session.requests == [("https://api.test/api/auth/admin-login", 1.5, False)]
        assert session.response.closed
        assert session.closed
        assert session.headers["User-Agent"].startswith("DeliveryDashboard")

    def test_unauthorized_is_still_reachable(self, fake_session):
        fake_session.status_code = 401
        assert ensure_online_connectivity("https://api.test/api") == 401

    def test_timeout(self, fake_session):
        fake_session.fail_with = requests.Timeout("slow")
        with pytest.raises(ConnectivityError, match="did not answer within 3s"):
            ensure_online_connectivity("https://api.test/api")
        assert fake_session.instances[0].closed

    def test_unreachable_host(self, fake_session):
        fake_session.fail_with = requests.ConnectionError("no route")
        with pytest.raises(ConnectivityError, match="Could not reach"):
            ensure_online_connectivity("https://api.test/api")

    def test_blank_endpoint_never_opens_a_session(self, fake_session):
        with pytest.raises(ConnectivityError):
            ensure_online_connectivity("")
        assert fake_session.instances == []
