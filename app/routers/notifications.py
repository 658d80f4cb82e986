"""
Notifications Router — /v1/notifications
"""

from typing import Optional

from fastapi import APIRouter, Depends

from app.repositories import notification_store
from app.routers.dependencies import get_organization_id
from app.schemas.responses import NotificationListResponse, NotificationResponse

router = APIRouter(
    prefix="/v1",
    tags=["notifications"],
)


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = 50,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """Newest first."""
    items = notification_store.list_notifications(organization_id)[:max(limit, 0)]
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n.to_dict()) for n in items],
        count=len(items),
    )
