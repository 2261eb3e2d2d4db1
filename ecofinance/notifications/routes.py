"""
Notification center API routes.
"""

from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, ValidationError

from .models import (
    NotificationPayload, NotificationCreate, NotificationPreferences,
    NotificationCategory, NotificationChannel,
)
from .pipeline import NotificationPipeline

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


class QuietHoursUpdate(BaseModel):
    enabled: bool
    start: Optional[str] = None
    end: Optional[str] = None


class CheckRequest(BaseModel):
    """Finance snapshot to evaluate the rules against"""
    budgets: List[Dict[str, Any]] = Field(default_factory=list)
    transactions: List[Dict[str, Any]] = Field(default_factory=list)
    goals: List[Dict[str, Any]] = Field(default_factory=list)
    profile: Optional[Dict[str, Any]] = None


def get_pipeline(request: Request) -> NotificationPipeline:
    """The pipeline instance created at application start"""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification pipeline not initialized",
        )
    return pipeline


def _not_found(notification_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Notification {notification_id} not found",
    )


@router.get("", response_model=List[NotificationPayload])
async def list_notifications(
    category: Optional[NotificationCategory] = Query(default=None),
    unread_only: bool = Query(default=False),
    search: Optional[str] = Query(default=None, max_length=200),
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    """List notifications, newest first"""
    return pipeline.store.get_notifications(
        category=category, unread_only=unread_only, search=search,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    data: NotificationCreate,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    """
    Add a notification directly (bypassing the rule engine).

    Dropped or queued notifications return ``{"delivered": false}``.
    """
    notification = pipeline.store.add_notification(data)
    if notification is None:
        return {"delivered": False, "notification": None}
    return {"delivered": True, "notification": notification.model_dump(mode="json")}


@router.get("/unread-count")
async def unread_count(pipeline: NotificationPipeline = Depends(get_pipeline)):
    return {"unread_count": pipeline.store.unread_count}


@router.get("/stats")
async def notification_stats(pipeline: NotificationPipeline = Depends(get_pipeline)):
    return pipeline.store.get_statistics()


@router.post("/read-all")
async def mark_all_read(pipeline: NotificationPipeline = Depends(get_pipeline)):
    changed = pipeline.store.mark_all_as_read()
    return {"updated": changed, "unread_count": pipeline.store.unread_count}


@router.post("/check", response_model=List[NotificationPayload])
async def check_rules(
    body: CheckRequest,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    """Evaluate the notification rules against a finance snapshot"""
    return await pipeline.on_transactions_changed(
        budgets=body.budgets,
        transactions=body.transactions,
        goals=body.goals,
        profile=body.profile,
    )


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(pipeline: NotificationPipeline = Depends(get_pipeline)):
    return pipeline.store.preferences


@router.patch("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    changes: Dict[str, Any],
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    """Shallow-merge preference fields"""
    try:
        return pipeline.store.update_preferences(changes)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


@router.post("/preferences/categories/{category}/toggle", response_model=NotificationPreferences)
async def toggle_category(
    category: NotificationCategory,
    channel: NotificationChannel = Query(default=NotificationChannel.IN_APP),
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    return pipeline.store.toggle_category(category, channel)


@router.put("/preferences/quiet-hours", response_model=NotificationPreferences)
async def set_quiet_hours(
    body: QuietHoursUpdate,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    try:
        return pipeline.store.set_quiet_hours(body.enabled, body.start, body.end)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


@router.get("/rules")
async def list_rules(pipeline: NotificationPipeline = Depends(get_pipeline)):
    return pipeline.engine.get_state()


@router.post("/rules/{rule_id}/toggle")
async def toggle_rule(
    rule_id: str,
    enabled: bool = Query(...),
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    rule = pipeline.rules.toggle_rule(rule_id, enabled)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Rule {rule_id} not found",
        )
    return {"id": rule.id, "enabled": rule.enabled, "updated_at": rule.updated_at.isoformat()}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    if not pipeline.store.mark_as_read(notification_id):
        raise _not_found(notification_id)
    return {"id": notification_id, "unread_count": pipeline.store.unread_count}


@router.post("/{notification_id}/dismiss")
async def dismiss(
    notification_id: str,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    if not pipeline.store.dismiss_notification(notification_id):
        raise _not_found(notification_id)
    return {"id": notification_id, "status": "dismissed"}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    pipeline: NotificationPipeline = Depends(get_pipeline),
):
    if not pipeline.store.delete_notification(notification_id):
        raise _not_found(notification_id)
    return {"deleted": notification_id, "unread_count": pipeline.store.unread_count}


@router.delete("")
async def clear_all(pipeline: NotificationPipeline = Depends(get_pipeline)):
    pipeline.store.clear_all()
    return {"cleared": True}
