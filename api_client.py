"""HTTP client for the tracker API, used by the timer manager."""

import logging
import os
from typing import Any, Callable, Dict, List, Optional

import httpx

from errors import AuthError, ConflictError, NetworkError, NotFoundError, ServerError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"


def error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if detail:
            return str(detail)
    return str(body)


class ApiClient:
    """
    Thin wrapper over httpx that attaches the bearer token and maps failures
    onto the errors module. `on_unauthorized` is called on any 401 response so
    the caller can log the user out.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.token = token
        self.on_unauthorized = on_unauthorized
        if client is None:
            client = httpx.Client(base_url=base_url or os.getenv("API_URL", DEFAULT_API_URL), timeout=timeout)
        self._http = client

    def close(self):
        self._http.close()

    def _request(self, method: str, path: str, json: Optional[dict] = None,
                 params: Optional[dict] = None) -> Any:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self._http.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status < 400:
            if status == 204 or not response.content:
                return None
            return response.json()

        detail = error_detail(response)
        logger.debug("%s %s -> %s %s", method, path, status, detail)
        if status == 401:
            if self.on_unauthorized:
                self.on_unauthorized()
            raise AuthError(detail, status)
        if status == 403:
            raise AuthError(detail, status)
        if status == 404:
            raise NotFoundError(detail, status)
        if status == 409:
            raise ConflictError(detail, status)
        if status >= 500:
            raise ServerError(detail, status)
        raise ValidationError(detail, status)

    # Timers

    def create_timer(self, client_id: Optional[str] = None, task_id: Optional[str] = None,
                     description: str = "", billable: bool = True) -> Dict[str, Any]:
        payload = {"description": description, "billable": billable}
        if client_id:
            payload["client_id"] = client_id
        if task_id:
            payload["task_id"] = task_id
        return self._request("POST", "/api/timers", json=payload)

    def stop_timer(self, timer_id: str, duration: Optional[int] = None) -> Dict[str, Any]:
        payload = {} if duration is None else {"duration": duration}
        return self._request("PUT", f"/api/timers/stop/{timer_id}", json=payload)

    def list_timers(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/timers")

    def get_running_timer(self) -> Optional[Dict[str, Any]]:
        return self._request("GET", "/api/timers/running")

    def get_timer(self, timer_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/timers/{timer_id}")

    def delete_timer(self, timer_id: str) -> None:
        self._request("DELETE", f"/api/timers/{timer_id}")

    # Profitability

    def get_profitability(self, client_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/profitability/client/{client_id}")

    def update_spent_hours(self, client_id: str, spent_hours: float, increment_only: bool = False) -> Dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/profitability/client/{client_id}/spent-hours",
            json={"spent_hours": spent_hours, "increment_only": increment_only},
        )

    # Tasks

    def get_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/tasks/{task_id}")

    def update_task(self, task_id: str, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/api/tasks/{task_id}", json=fields)

    def list_high_impact_tasks(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/tasks/high-impact")

    def get_client_impact(self, client_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/tasks/impact/client/{client_id}")

    def complete_task(self, task_id: str, actual_time: Optional[int] = None) -> Dict[str, Any]:
        payload = {} if actual_time is None else {"actual_time": actual_time}
        return self._request("PUT", f"/api/tasks/{task_id}/complete", json=payload)
