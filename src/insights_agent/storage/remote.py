from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from insights_agent.ingest.base import Plan, PlanAck, Session, SessionAck
from insights_agent.storage.base import (
    CollectorUnavailableError,
    DeliveryError,
    UnauthorizedError,
)
from insights_agent.storage.models import ServerConfig

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0

AckT = TypeVar("AckT", bound=BaseModel)

_SESSIONS = TypeAdapter(list[Session])
_PLANS = TypeAdapter(list[Plan])


class CollectorClient:
    """Stateless HTTP transport for sessions and plans."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Collector client requires a base URL.")

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": api_key,
        }
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ServerConfig) -> CollectorClient:
        api_key = config.resolved_api_key()
        if not config.url or not api_key:
            raise ValueError("Collector client requires server.url and an API key.")
        return cls(config.url, api_key, timeout_seconds=config.timeout_seconds)

    def upload_session(self, session: Session) -> SessionAck:
        body = self._post(f"{API_PREFIX}/sessions", session.model_dump_json())
        return self._decode(body, SessionAck)

    def upload_sessions(self, sessions: Sequence[Session]) -> list[SessionAck]:
        body = self._post(f"{API_PREFIX}/sessions/batch", _SESSIONS.dump_json(list(sessions)))
        return self._decode_list(body, SessionAck)

    def upload_plan(self, plan: Plan) -> PlanAck:
        body = self._post(f"{API_PREFIX}/plans", plan.model_dump_json())
        return self._decode(body, PlanAck)

    def upload_plans(self, plans: Sequence[Plan]) -> list[PlanAck]:
        body = self._post(f"{API_PREFIX}/plans/batch", _PLANS.dump_json(list(plans)))
        return self._decode_list(body, PlanAck)

    def health(self) -> None:
        """Raise ``CollectorUnavailableError`` unless the collector answers 200."""
        try:
            response = self._client.get("/health")
        except httpx.HTTPError as exc:
            raise CollectorUnavailableError(f"server unreachable: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise CollectorUnavailableError(
                f"server unhealthy: status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CollectorClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _post(self, path: str, content: str | bytes) -> bytes:
        try:
            response = self._client.post(path, content=content)
        except httpx.HTTPError as exc:
            raise CollectorUnavailableError(f"send request: {exc}") from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise UnauthorizedError(body=response.text)
        if response.status_code >= 400:
            raise DeliveryError(
                f"server error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.content

    @staticmethod
    def _decode(body: bytes, model: type[AckT]) -> AckT:
        try:
            return model.model_validate_json(body)
        except ValidationError as exc:
            raise DeliveryError(f"parse response: {exc}") from exc

    @staticmethod
    def _decode_list(body: bytes, model: type[AckT]) -> list[AckT]:
        if body.strip() in (b"", b"null"):
            return []
        try:
            return TypeAdapter(list[model]).validate_json(body)  # type: ignore[valid-type]
        except ValidationError as exc:
            raise DeliveryError(f"parse response: {exc}") from exc
