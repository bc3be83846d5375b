import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response, Request, Depends, status
from sqlalchemy.orm import Session

from app import service
from app.auth import CurrentUser, create_token, get_current_user
from app.config import settings
from app.errors import MessagelyError, raise_for_result, register_error_handlers
from app.storage import init_db, check_db_health, get_db, create_user, authenticate_user
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_message_data
from app.metrics import record_message_outcome, get_metrics, get_metrics_content_type
from app.schemas import (
    HealthResponse,
    ErrorResponse,
    SendMessageRequest,
    RegisterRequest,
    LoginRequest,
    TokenResponse,
    MessageDetail,
    MessageDetailResponse,
    SentMessage,
    SentMessageResponse,
    ReadReceipt,
    ReadReceiptResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Messagely API",
    description="Direct messages between registered users",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
register_error_handlers(app)


_RESULT_LABELS = {
    service.Ok: "ok",
    service.Unauthorized: "unauthorized",
    service.NotFound: "not_found",
    service.RecipientNotFound: "recipient_not_found",
}


def _track(request: Request, action: str, result: service.Result, message_id: Optional[int] = None) -> None:
    """Record the outcome of a message operation in metrics and the access log."""
    label = _RESULT_LABELS[type(result)]
    if message_id is None and isinstance(result, service.Ok):
        message_id = result.value.id
    record_message_outcome(action, label)
    log_message_data(request, action=action, message_id=message_id, result=label)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. SECRET_KEY is set (non-empty)

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.SECRET_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="SECRET_KEY not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Auth Routes
# =============================================================================

@app.post(
    "/auth/register",
    response_model=TokenResponse,
    responses={400: {"model": ErrorResponse, "description": "Username taken"}},
)
async def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Register a user and log them in."""
    user = create_user(
        db,
        username=payload.username,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
    )
    if user is None:
        raise MessagelyError(f"Username '{payload.username}' already taken.")

    logger.info(f"Registered user: {user.username}")
    return TokenResponse(token=create_token(user.username))


@app.post(
    "/auth/login",
    response_model=TokenResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Exchange a username/password for a session token."""
    user = authenticate_user(db, payload.username, payload.password)
    if user is None:
        raise MessagelyError("Invalid username/password")

    return TokenResponse(token=create_token(user.username))


# =============================================================================
# Messages Routes
# =============================================================================

@app.get(
    "/messages/{message_id}",
    response_model=MessageDetailResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not the sender or recipient"},
        404: {"model": ErrorResponse, "description": "No such message"},
    }
)
async def get_message(
    message_id: int,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageDetailResponse:
    """
    Get detail of a message.

    Only the sender or the recipient may read it.
    """
    logger.info(f"GET /messages/{message_id} by {user.username}")

    result = service.get_message(db, user, message_id)
    _track(request, "get", result, message_id)
    message = raise_for_result(result)

    return MessageDetailResponse(message=MessageDetail.model_validate(message))


@app.post(
    "/messages",
    response_model=SentMessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Recipient not found"},
        422: {"description": "Validation error"},
    }
)
async def send_message(
    payload: SendMessageRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SentMessageResponse:
    """
    Send a message from the logged-in user.

    {to_username, body} => {message: {id, from_username, to_username, body, sent_at}}
    """
    logger.info(f"POST /messages: from={user.username}, to={payload.to_username}")

    result = service.send_message(db, user, payload.to_username, payload.body)
    _track(request, "send", result)
    message = raise_for_result(result)

    return SentMessageResponse(message=SentMessage.model_validate(message))


@app.post(
    "/messages/{message_id}/read",
    response_model=ReadReceiptResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not the recipient"},
        404: {"model": ErrorResponse, "description": "No such message"},
    }
)
async def mark_message_read(
    message_id: int,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReadReceiptResponse:
    """
    Mark a message as read. Only the recipient may do this.

    Marking an already-read message returns the original read_at.
    """
    logger.info(f"POST /messages/{message_id}/read by {user.username}")

    result = service.mark_read(db, user, message_id)
    _track(request, "mark_read", result, message_id)
    message = raise_for_result(result)

    return ReadReceiptResponse(message=ReadReceipt.model_validate(message))


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    Returns metrics in Prometheus text exposition format including:
    - http_requests_total: Total HTTP requests by method, path, status
    - message_requests_total: Message operation outcomes by action, result
    - request_latency_seconds: Request latency histogram
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
