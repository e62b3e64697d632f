from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Protocol
import requests
from .errors import RemoteCallFailure
from .models import Participation

logger = logging.getLogger(__name__)


class ParticipationStore(Protocol):
    """Внешнее хранилище участий. Любой вызов может упасть независимо от других."""

    def list_participations(self, event_id: Optional[str] = None, status: Optional[str] = None) -> List[Participation]:
        ...

    def approve(self, participation_id: str) -> None:
        ...

    def reject(self, participation_id: str) -> None:
        ...

    def set_attendance(self, participation_id: str, attended: bool) -> None:
        ...


def _error_message(response: requests.Response) -> str:
    # сервер отвечает {"message": "..."}; иначе кусок текста
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    text = (response.text or "").strip()
    return text[:200] if text else response.reason or "Request failed"


class HttpParticipationStore:
    """
    HTTP-клиент API участий:
      GET  /participations?eventId=&status=
      PUT  /participations/{id}/approve
      PUT  /participations/{id}/reject
      PUT  /participations/{id}/attendance  {"attended": bool}
      GET  /events  (только для фильтра по мероприятию)
    Каждый запрос с таймаутом; ошибки сети/HTTP -> RemoteCallFailure.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        participation_id: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise RemoteCallFailure(operation, f"timed out after {self.timeout}s", participation_id) from e
        except requests.RequestException as e:
            raise RemoteCallFailure(operation, str(e), participation_id) from e

        if not response.ok:
            raise RemoteCallFailure(
                operation,
                _error_message(response),
                participation_id,
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def list_participations(self, event_id: Optional[str] = None, status: Optional[str] = None) -> List[Participation]:
        params: Dict[str, str] = {}
        if status and status != "all":
            params["status"] = status
        if event_id:
            params["eventId"] = event_id
        data = self._request("GET", "/participations", "list participations", params=params)
        if not isinstance(data, list):
            raise RemoteCallFailure("list participations", "unexpected response body")
        return [Participation.from_api(item) for item in data if isinstance(item, dict)]

    def list_events(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/events", "list events")
        return [e for e in (data or []) if isinstance(e, dict)]

    def approve(self, participation_id: str) -> None:
        self._request("PUT", f"/participations/{participation_id}/approve", "approve", participation_id)

    def reject(self, participation_id: str) -> None:
        self._request("PUT", f"/participations/{participation_id}/reject", "reject", participation_id)

    def set_attendance(self, participation_id: str, attended: bool) -> None:
        self._request(
            "PUT",
            f"/participations/{participation_id}/attendance",
            "set attendance",
            participation_id,
            json={"attended": bool(attended)},
        )
