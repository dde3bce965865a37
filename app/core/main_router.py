from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from app.core.auth import verify_token
from otp_relay.errors import AuthError, ValidationError
from otp_relay.models import SmsIngestRequest
from otp_relay.service import RelayService, get_relay_service

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    running: bool
    pending: int
    sources: List[str]


class WebhookResponse(BaseModel):
    """Lifecycle webhook response model."""

    success: bool


class SmsIngestResponse(BaseModel):
    """SMS ingest response model."""

    success: bool
    id: str


@router.get("/health", status_code=200, response_model=HealthResponse)
def health(service: RelayService = Depends(get_relay_service)):
    """Health check endpoint."""
    logger.debug("Health check endpoint called")
    return service.get_status()


@router.post("/api/webhook", response_model=WebhookResponse)
async def lifecycle_webhook(
    request: Request,
    x_webhook_signature: Optional[str] = Header(
        default=None, alias="X-Webhook-Signature"
    ),
    service: RelayService = Depends(get_relay_service),
):
    """Apply an approved/cancelled/expired/consumed event from the policy service."""
    try:
        try:
            body = await request.json()
        except ValueError:
            body = None

        service.lifecycle_handler.handle(x_webhook_signature, body)

    except AuthError:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})
    except ValidationError as e:
        logger.warning(f"Rejected webhook: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.error(f"Webhook error: {e}")
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return WebhookResponse(success=True)


@router.post(
    "/api/sms",
    response_model=SmsIngestResponse,
    dependencies=[Depends(verify_token)],
)
def ingest_sms(
    sms: SmsIngestRequest, service: RelayService = Depends(get_relay_service)
):
    """Accept an SMS pushed by a forwarder device."""
    try:
        message = service.ingest_sms(sms)
    except RuntimeError as e:
        logger.warning(f"SMS rejected: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    logger.info(f"Received SMS {message.message_id} from {message.sender}")
    return SmsIngestResponse(success=True, id=message.message_id)
