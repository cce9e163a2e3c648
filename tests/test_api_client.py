"""Tests for the HTTP client and its error mapping."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from api_client import ApiClient
from errors import AuthError, ConflictError, NetworkError, NotFoundError, ServerError, ValidationError
from timer_manager import TimerManager, TimerState


def client_for(handler, **kwargs):
    transport = httpx.MockTransport(handler)
    return ApiClient(token="secret", client=httpx.Client(base_url="http://api.test", transport=transport), **kwargs)


class TestRequests:
    """Test request shaping."""

    def test_bearer_header_and_body(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"_id": "t1"})

        api = client_for(handler)
        assert api.create_timer(client_id="c1", description="Call") == {"_id": "t1"}
        assert seen["auth"] == "Bearer secret"
        assert seen["path"] == "/api/timers"
        assert seen["body"] == {"description": "Call", "billable": True, "client_id": "c1"}

    def test_spent_hours_payload(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"spent_hours": 9.5})

        client_for(handler).update_spent_hours("c1", 0.5, increment_only=True)
        assert seen == {"method": "PUT", "body": {"spent_hours": 0.5, "increment_only": True}}

    def test_null_body(self):
        api = client_for(lambda request: httpx.Response(200, content=b"null",
                                                        headers={"content-type": "application/json"}))
        assert api.get_running_timer() is None

    def test_impact_paths(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json=[])

        api = client_for(handler)
        api.list_high_impact_tasks()
        api.get_client_impact("c1")
        assert paths == ["/api/tasks/high-impact", "/api/tasks/impact/client/c1"]

    def test_empty_body(self):
        api = client_for(lambda request: httpx.Response(204))
        assert api.delete_timer("t1") is None


class TestErrorMapping:
    """Test that HTTP failures map onto the errors module."""

    @pytest.mark.parametrize("status,error", [
        (400, ValidationError),
        (422, ValidationError),
        (403, AuthError),
        (404, NotFoundError),
        (409, ConflictError),
        (500, ServerError),
        (503, ServerError),
    ])
    def test_status_codes(self, status, error):
        api = client_for(lambda request: httpx.Response(status, json={"detail": "nope"}))
        with pytest.raises(error) as excinfo:
            api.get_timer("t1")
        assert excinfo.value.status_code == status
        assert excinfo.value.message == "nope"

    def test_unauthorized_calls_hook(self):
        hook = MagicMock()
        api = client_for(lambda request: httpx.Response(401, json={"detail": "Invalid or expired token"}),
                         on_unauthorized=hook)
        with pytest.raises(AuthError):
            api.list_timers()
        hook.assert_called_once_with()

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            client_for(handler).list_timers()

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(NetworkError):
            client_for(handler).get_profitability("c1")

    def test_local_errors_have_no_status(self):
        error = ValidationError("Select a client or a task before starting the timer")
        assert error.status_code is None
        assert str(error) == error.message

    def test_plain_text_error(self):
        api = client_for(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(ServerError) as excinfo:
            api.list_timers()
        assert excinfo.value.message == "Bad Gateway"


class TestAgainstApp:
    """Drive the timer manager through the real API."""

    def test_timer_session_commits_hours(self, api, client_id):
        client = ApiClient(token="token-ada", client=TestClient(main.app))
        actions = []
        manager = TimerManager(client, lambda action, payload: actions.append(action))

        manager.start(client_id=client_id)
        for _ in range(1800):
            manager.tick()
        assert manager.stop() == 1800

        record = api.get(f"/api/profitability/client/{client_id}").json()
        assert record["spent_hours"] == pytest.approx(0.5)
        assert record["remaining_hours"] == pytest.approx(9.5)
        assert manager.state == TimerState.IDLE
        assert "timer/stopped" in actions

    def test_second_manager_gets_conflict(self, api, client_id):
        first = TimerManager(ApiClient(token="token-ada", client=TestClient(main.app)), lambda a, p: None)
        second = TimerManager(ApiClient(token="token-ada", client=TestClient(main.app)), lambda a, p: None)
        first.start(client_id=client_id)
        with pytest.raises(ConflictError):
            second.start(client_id=client_id)

    def test_complete_task_through_manager(self, api, client_id):
        task = api.post("/api/tasks", json={"title": "Ship it", "client_id": client_id}).json()
        manager = TimerManager(ApiClient(token="token-ada", client=TestClient(main.app)), lambda a, p: None)

        manager.start(task_id=task["_id"])
        for _ in range(120):
            manager.tick()
        result = manager.complete_task(True)

        assert result["task"]["status"] == "done"
        assert result["task"]["actual_time"] == 2
        assert api.get("/api/timers/running").json() is None
