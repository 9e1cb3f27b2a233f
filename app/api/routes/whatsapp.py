"""
WhatsApp Webhook Endpoint.

Receives Twilio WhatsApp messages (form-encoded) and answers with TwiML.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Form, HTTPException, Response, status
from twilio.twiml.messaging_response import MessagingResponse

from app.core.intelligence.normalize import mask_patient_id
from app.core.scheduling.engine import get_scheduling_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WhatsApp"])

TWIML_MEDIA_TYPE = "text/xml"


def build_twiml(message: str) -> str:
    """Wrap a reply in a TwiML <Response><Message> document."""
    twiml = MessagingResponse()
    twiml.message(message)
    return str(twiml)


@router.post(
    "/whatsapp",
    summary="Twilio WhatsApp webhook",
    description="Processes one inbound message and replies with TwiML.",
    responses={
        200: {"content": {TWIML_MEDIA_TYPE: {}}, "description": "TwiML reply"},
        400: {"description": "Missing sender"},
    },
)
async def whatsapp_webhook(
    sender: Optional[str] = Form(default=None, alias="From"),
    body: Optional[str] = Form(default=None, alias="Body"),
) -> Response:
    """
    Handle an inbound WhatsApp message.

    The sender (``From``) identifies the patient's session. A missing sender
    is rejected before any session is touched.
    """
    sender = (sender or "").strip()
    if not sender:
        logger.warning("Webhook called without From")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing From",
        )

    logger.debug(f"Inbound message | patient={mask_patient_id(sender)}")

    engine = get_scheduling_engine()
    result = await engine.process(sender, body or "")

    return Response(content=build_twiml(result.message), media_type=TWIML_MEDIA_TYPE)
