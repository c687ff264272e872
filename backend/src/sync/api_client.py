"""HTTP client for the MentorLink API.

Implements DocumentSource for the synchronizer and wraps the mutating
endpoints. Upload and review preconditions are checked locally before any
request is sent; failures reported by the server raise RemoteOperationError.
"""

import logging
from typing import Any, BinaryIO, Dict, List, Optional, Union
from uuid import UUID

import httpx
from pydantic import ValidationError

from documents.schemas import DocumentStats
from domain.documents.validation import validate_review, validate_upload, ReviewAction
from .ports import ChangeSubscription, DocumentSource
from .records import ChangeEvent, DocumentRecord, FilterCriteria

logger = logging.getLogger(__name__)


class RemoteOperationError(Exception):
    """The server rejected a request or could not be reached.

    Attributes:
        status_code: HTTP status, or None for transport failures
        detail: Server-provided error detail, when available
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


def _error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("detail") or body.get("message") or body
    return body


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.is_success:
        return
    detail = _error_detail(response)
    raise RemoteOperationError(
        f"{operation} failed ({response.status_code}): {detail}",
        status_code=response.status_code,
        detail=detail,
    )


def _parse(model, response: httpx.Response, operation: str):
    """Validate a response body into ``model``; a malformed body is a remote failure."""
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise RemoteOperationError(
            f"{operation} returned a malformed response: {exc}",
            status_code=response.status_code,
        ) from exc


class ServerSentEventSubscription(ChangeSubscription):
    """Change feed read from GET /realtime/documents.

    The connection is opened lazily on the first ``__anext__``. Keep-alive
    comments are skipped; malformed frames are logged and skipped. A
    ``reset`` frame (the server dropped us for falling behind) raises
    RemoteOperationError so the owner knows to refresh.
    """

    def __init__(self, http: httpx.AsyncClient, params: Dict[str, str]):
        self._http = http
        self._params = params
        self._stream = None
        self._response: Optional[httpx.Response] = None
        self._lines = None
        self._closed = False

    async def _open(self) -> None:
        self._stream = self._http.stream(
            "GET",
            "/realtime/documents",
            params=self._params,
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(10.0, read=None),
        )
        try:
            self._response = await self._stream.__aenter__()
        except httpx.HTTPError as exc:
            self._stream = None
            raise RemoteOperationError(f"Opening the change feed failed: {exc}") from exc

        if not self._response.is_success:
            await self._response.aread()
            try:
                _raise_for_status(self._response, "Opening the change feed")
            finally:
                await self.close()
        self._lines = self._response.aiter_lines()

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        if self._response is None:
            await self._open()

        event_name: Optional[str] = None
        data: List[str] = []
        while True:
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                await self.close()
                raise
            except httpx.HTTPError as exc:
                await self.close()
                raise RemoteOperationError(f"Change feed connection lost: {exc}") from exc

            if line.startswith(":"):
                continue
            if line:
                field, _, value = line.partition(":")
                if value.startswith(" "):
                    value = value[1:]
                if field == "event":
                    event_name = value
                elif field == "data":
                    data.append(value)
                continue

            # Blank line terminates a frame
            if not data and event_name is None:
                continue
            if event_name == "reset":
                await self.close()
                raise RemoteOperationError("Change feed was reset by the server; refresh required")
            try:
                return ChangeEvent.model_validate_json("\n".join(data))
            except ValidationError as exc:
                logger.warning(f"Skipping malformed change event: {exc}")
            event_name, data = None, []

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.__aexit__(None, None, None)


class MentorLinkClient(DocumentSource):
    """Async client for one signed-in viewer.

    Args:
        base_url: Server root, e.g. "https://mentorlink.example.edu"
        token: Existing access token (otherwise call login())
        transport: Custom httpx transport (tests use httpx.MockTransport)
        timeout: Per-request timeout in seconds

    Example:
        async with MentorLinkClient("http://localhost:8000") as client:
            await client.login("student@example.edu", "secret-pass1")
            docs = await client.fetch_documents()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/api/v1",
            transport=transport,
            timeout=timeout,
        )
        self.token: Optional[str] = None
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self.token = token
        self._http.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "MentorLinkClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteOperationError(f"{operation} failed: {exc}") from exc
        _raise_for_status(response, operation)
        return response

    # -- session ------------------------------------------------------------

    async def login(self, email: str, password: str) -> str:
        """Sign in and keep the access token for later requests."""
        response = await self._request(
            "Login", "POST", "/auth/login", json={"email": email, "password": password}
        )
        try:
            token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteOperationError(
                f"Login returned a malformed response: {exc}", status_code=response.status_code
            ) from exc
        self.set_token(token)
        return token

    # -- DocumentSource -----------------------------------------------------

    async def fetch_documents(
        self,
        student_id: Optional[UUID] = None,
        criteria: Optional[FilterCriteria] = None,
    ) -> List[DocumentRecord]:
        params: Dict[str, str] = dict(criteria.to_params()) if criteria else {}
        if student_id:
            params["student_id"] = str(student_id)
        response = await self._request("Fetching documents", "GET", "/documents", params=params)
        try:
            rows = response.json()["documents"]
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteOperationError(
                f"Fetching documents returned a malformed response: {exc}",
                status_code=response.status_code,
            ) from exc

        documents: List[DocumentRecord] = []
        for row in rows:
            try:
                documents.append(DocumentRecord.model_validate(row))
            except ValidationError as exc:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.warning(f"Skipping malformed document row {row_id!r}: {exc.error_count()} errors")
        return documents

    async def fetch_document(self, document_id: UUID) -> Optional[DocumentRecord]:
        try:
            response = await self._http.get(f"/documents/{document_id}")
        except httpx.HTTPError as exc:
            raise RemoteOperationError(f"Fetching document {document_id} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        _raise_for_status(response, f"Fetching document {document_id}")
        return _parse(DocumentRecord, response, f"Fetching document {document_id}")

    def subscribe(self, student_id: Optional[UUID] = None) -> ServerSentEventSubscription:
        params = {"student_id": str(student_id)} if student_id else {}
        return ServerSentEventSubscription(self._http, params)

    # -- queries and mutations ----------------------------------------------

    async def fetch_stats(self, student_id: Optional[UUID] = None) -> DocumentStats:
        params = {"student_id": str(student_id)} if student_id else {}
        response = await self._request("Fetching stats", "GET", "/documents/stats", params=params)
        return _parse(DocumentStats, response, "Fetching stats")

    async def upload_document(
        self,
        file: Union[bytes, BinaryIO],
        filename: str,
        mime_type: str,
        category_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> DocumentRecord:
        """Submit a file for review.

        Raises:
            UploadValidationError: Before any request, if the file is unacceptable
            RemoteOperationError: If the server rejects the upload
        """
        content = file if isinstance(file, bytes) else file.read()
        description = validate_upload(filename, mime_type, len(content), description)

        data: Dict[str, str] = {}
        if category_id:
            data["category_id"] = str(category_id)
        if description:
            data["description"] = description

        response = await self._request(
            "Upload",
            "POST",
            "/documents",
            files={"file": (filename, content, mime_type)},
            data=data,
        )
        return _parse(DocumentRecord, response, "Upload")

    async def review_document(
        self,
        document_id: UUID,
        action: Union[ReviewAction, str],
        feedback: Optional[str] = None,
    ) -> DocumentRecord:
        """Approve or reject a pending document.

        Raises:
            ReviewValidationError: Before any request, e.g. reject without feedback
            RemoteOperationError: If the server refuses the review
        """
        decision = validate_review(action, feedback)
        response = await self._request(
            "Review",
            "POST",
            f"/documents/{document_id}/review",
            json={"action": decision.action.value, "feedback": decision.feedback},
        )
        return _parse(DocumentRecord, response, "Review")
