"""Common schemas used across the API."""

from typing import Optional

from pydantic import BaseModel


class PaginationInfo(BaseModel):
    """Offset pagination metadata."""
    current_page: int
    per_page: int
    total: int
    has_prev_page: bool
    has_next_page: bool
    prev_page: Optional[int] = None
    next_page: Optional[int] = None

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationInfo":
        has_prev = page > 1
        has_next = page * limit < total
        return cls(
            current_page=page,
            per_page=limit,
            total=total,
            has_prev_page=has_prev,
            has_next_page=has_next,
            prev_page=page - 1 if has_prev else None,
            next_page=page + 1 if has_next else None,
        )


class ErrorResponse(BaseModel):
    """Error body for 4xx/5xx responses."""
    error: str


class SyncStatus(BaseModel):
    """Last sync cycle result from the poller."""
    success: Optional[bool] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None
    mode: Optional[str] = None
    processed: int = 0
    consecutive_failures: int = 0


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    uptime_seconds: float
    database: str
    ready: bool
    shutdown: bool
    last_sync: Optional[SyncStatus] = None


class ProbeResponse(BaseModel):
    """Liveness/readiness probe response."""
    status: str
    message: Optional[str] = None
    error: Optional[str] = None
    uptime_seconds: Optional[float] = None
