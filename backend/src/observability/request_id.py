"""Request IDs for correlating the log lines of one API call.

Clients may send their own X-Request-ID; anything that is not a short
token of safe characters is replaced so it cannot forge log lines.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def generate_request_id() -> str:
    return uuid.uuid4().hex


def accept_request_id(header_value: Optional[str]) -> str:
    """Reuse a well-formed client-supplied ID, otherwise mint a new one."""
    if header_value and _CLIENT_ID_PATTERN.match(header_value):
        return header_value
    return generate_request_id()


def get_request_id() -> str:
    return request_id_var.get() or "-"


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)
