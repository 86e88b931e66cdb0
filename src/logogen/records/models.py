"""Record shapes written to the record store.

Each model maps to one collection (a directory for the JSON store).  Records
are plain dictionaries once they reach the store; these models only define
what the service writes.  ``id``, ``created_at`` and ``updated_at`` are
assigned by the store itself.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

TRANSACTIONS = "ImageGenerationTransaction"
API_REQUESTS = "ApiRequestLog"
SYSTEM_EVENTS = "SystemEventLog"
SESSIONS = "UserSession"

MODEL_NAMES = (TRANSACTIONS, API_REQUESTS, SYSTEM_EVENTS, SESSIONS)


class ClientInfo(BaseModel):
    """Caller metadata taken from the HTTP request."""

    client_ip: str | None = None
    user_agent: str | None = None


class TransactionRecord(BaseModel):
    """One generation attempt, successful or not."""

    timestamp: str
    session_id: str | None = None
    client_ip: str | None = None
    user_agent: str | None = None

    original_prompt: str
    enhanced_prompt: str | None = None
    final_prompt: str | None = None
    image_type: str
    enhance_prompt_requested: bool | None = None

    success: bool
    status: str
    error_message: str | None = None
    image_url: str | None = None
    processed_filename: str | None = None
    original_filename: str | None = None
    processed_file_path: str | None = None
    original_file_path: str | None = None
    file_size: int | None = None
    original_file_size: int | None = None
    dimensions: dict[str, int] | None = None

    total_ms: float
    enhancement_ms: float | None = None
    generation_ms: float | None = None
    processing_ms: float | None = None

    api_model: str
    api_base_url: str
    llm_model: str | None = None


class ApiRequestEntry(BaseModel):
    """One HTTP call handled by the service."""

    timestamp: str
    method: str
    path: str
    query: str | None = None
    status_code: int
    duration_ms: float
    client_ip: str | None = None
    user_agent: str | None = None
    request_headers: dict[str, str] = Field(default_factory=dict)
    request_body: Any = None
    response_body: Any = None
    error_occurred: bool = False


class SystemEvent(BaseModel):
    timestamp: str
    event_type: str
    component: str
    level: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    environment: str
    version: str


class SessionAggregate(BaseModel):
    """Running request counters for one (client ip, user agent) pair."""

    client_ip: str | None = None
    user_agent: str | None = None
    first_seen: str
    last_activity: str
    total_requests: int = 0
    successful_generations: int = 0
    failed_generations: int = 0
