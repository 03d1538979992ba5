from __future__ import annotations

from fastapi import APIRouter, Depends

from lifecraft.db import ProfileRow
from lifecraft.dependencies import get_mailer, require_admin
from lifecraft.mailer import Mailer, send_completion_notification
from lifecraft.schemas import CompletionNotificationRequest, NotificationResponse

router = APIRouter()


@router.post("/completion", response_model=NotificationResponse)
def send_completion(
    payload: CompletionNotificationRequest,
    admin: ProfileRow = Depends(require_admin),
    mailer: Mailer = Depends(get_mailer),
):
    message_id = send_completion_notification(
        mailer,
        email=payload.email,
        full_name=payload.fullName,
        drill_title=payload.drillTitle,
        drill_date=payload.drillDate,
        drill_location=payload.drillLocation,
    )
    return NotificationResponse(success=True, messageId=message_id)
