"""Knowledge-base REST client.

Authenticated JSON over HTTPS with a bearer token.  The client is
long-lived and shared; each thread gets its own ``requests.Session`` so
calls dispatched through ``run_sync_limited`` never share connection
state.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

import requests
from pydantic import ValidationError

from .models import (
    CreateFragmentRequest,
    FragmentCreated,
    UpdateFragmentRequest,
)

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)


class KnowledgeBaseError(Exception):
    """A fragment API call failed.

    Attributes:
        status: HTTP status code, or ``None`` for transport failures
            (timeouts, connection errors, malformed responses).
        message: Server-provided or derived error description.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"HTTP {self.status}: {self.message}"


class KnowledgeBaseClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        return session

    def _request(
        self, method: str, path: str, payload: dict | None = None
    ) -> Any:
        """Send one JSON request and return the decoded body.

        Raises:
            KnowledgeBaseError: On timeout, connection failure, non-2xx
                status, or an undecodable JSON body.
        """
        url = f"{self.base_url}{path}"
        logger.debug("Knowledge-base request: %s %s", method, url)
        try:
            response = self._get_session().request(
                method,
                url,
                json=payload,
                timeout=self.config.request_timeout,
            )
        except requests.Timeout as e:
            raise KnowledgeBaseError(
                f"Request timed out after {self.config.request_timeout}s"
            ) from e
        except requests.RequestException as e:
            raise KnowledgeBaseError(f"Request failed: {e}") from e

        logger.debug(
            "Knowledge-base response: %s %s -> %d",
            method,
            url,
            response.status_code,
        )

        if not response.ok:
            message = _error_message(response)
            logger.error(
                "Knowledge-base API error: %s %s -> %d %s",
                method,
                path,
                response.status_code,
                message,
            )
            raise KnowledgeBaseError(message, status=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise KnowledgeBaseError(
                "Response body is not valid JSON",
                status=response.status_code,
            ) from e

    def create_fragment(
        self, request: CreateFragmentRequest
    ) -> FragmentCreated:
        """
        Create a fragment.

        Returns:
            The parsed create response (at least ``fragment_id``).

        Raises:
            KnowledgeBaseError: If the API rejects the request or the
                response carries no fragment id.
        """
        logger.info("Creating fragment: %s", request.title)
        data = self._request(
            "POST", "/memory-fragments", request.to_payload()
        )
        try:
            created = FragmentCreated.model_validate(data)
        except ValidationError as e:
            raise KnowledgeBaseError(
                f"Create response missing fragmentId: {data!r}"
            ) from e
        logger.info(
            "Created fragment %s (%s)", created.fragment_id, request.title
        )
        return created

    def update_fragment(self, request: UpdateFragmentRequest) -> None:
        """
        Overwrite the fields present in *request* on an existing fragment.

        Raises:
            KnowledgeBaseError: If the API rejects the update.
        """
        logger.info(
            "Updating fragment %s (fields: %s)",
            request.fragment_id,
            ", ".join(request.changed_fields) or "none",
        )
        self._request(
            "PATCH",
            f"/memory-fragments/{request.fragment_id}",
            request.to_payload(),
        )


def _error_message(response: requests.Response) -> str:
    """Extract ``message`` (or ``error``) from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason or "Unknown error"
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if value:
                return str(value)
    return response.reason or "Unknown error"
