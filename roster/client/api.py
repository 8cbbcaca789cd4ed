"""HTTP client for the roster service.

Error bodies are decoded back into the engine's typed errors, so callers
handle the same exceptions on both sides of the wire.
"""

import logging
from typing import Any, Optional

import httpx

from roster.services.errors import (
    ERRORS_BY_CODE,
    ErrorCode,
    RegistrationError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


def decode_error(response: httpx.Response) -> RegistrationError:
    """Rebuild the typed error carried by an error response."""
    try:
        body = response.json()
        code = ErrorCode(body["code"])
    except (ValueError, KeyError, TypeError):
        return StoreUnavailableError(f"Unexpected response from roster service ({response.status_code})")

    return ERRORS_BY_CODE[code].from_dict(body)


class RosterClient:
    """Synchronous client for the registration endpoints."""

    def __init__(self, http: Optional[httpx.Client] = None, base_url: str = "http://localhost:8000", timeout: float = 10.0):
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.error("Roster service unreachable: %s %s", method, url, exc_info=True)
            raise StoreUnavailableError("The roster service is unreachable") from e
        if response.is_success:
            return response.json()
        raise decode_error(response)

    def list_events(self) -> list[dict]:
        return self._request("GET", "/events")

    def list_attendees(self, event_id: int) -> list[dict]:
        return self._request("GET", "/attendees", params={"event_id": event_id})

    def admit(self, event_id: int, name: str, email: str) -> dict:
        return self._request("POST", "/attendees", json={"event_id": event_id, "name": name, "email": email})

    def reassign(self, attendee_id: int, event_id: int, name: str, email: str) -> dict:
        return self._request(
            "PUT",
            f"/attendees/{attendee_id}",
            json={"event_id": event_id, "name": name, "email": email},
        )

    def withdraw(self, attendee_id: int) -> dict:
        return self._request("DELETE", f"/attendees/{attendee_id}")

    def retire_event(self, event_id: int) -> dict:
        return self._request("DELETE", f"/events/{event_id}")
