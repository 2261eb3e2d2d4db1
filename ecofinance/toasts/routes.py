"""
Toast API routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ecofinance.notifications.models import NotificationAction

from .models import ToastRequest, ToastRole, ToastType
from .service import ToastManager

router = APIRouter(prefix="/api/toasts", tags=["Toasts"])


class ToastCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(default="", max_length=1000)
    type: ToastType = ToastType.INFO
    duration: Optional[int] = Field(default=None, ge=0)
    action: Optional[NotificationAction] = None
    transaction_type: Optional[str] = None
    source: str = "api"
    role: ToastRole = ToastRole.NORMAL


def get_toasts(request: Request) -> ToastManager:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None or pipeline.toasts is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Toast manager not initialized",
        )
    return pipeline.toasts


@router.get("")
async def list_toasts(toasts: ToastManager = Depends(get_toasts)):
    """Visible and queued toasts"""
    return toasts.get_state()


@router.post("")
async def show_toast(body: ToastCreate, toasts: ToastManager = Depends(get_toasts)):
    toast = toasts.show(ToastRequest(**body.model_dump(exclude={"action"}), action=body.action))
    if toast is None:
        return {"shown": False, "toast": None}
    return {"shown": True, "toast": toast.to_dict()}


@router.post("/{toast_id}/action")
async def invoke_action(toast_id: str, toasts: ToastManager = Depends(get_toasts)):
    action = toasts.invoke_action(toast_id)
    if action is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Toast {toast_id} has no action",
        )
    return action


@router.delete("/{toast_id}")
async def dismiss_toast(toast_id: str, toasts: ToastManager = Depends(get_toasts)):
    if not toasts.dismiss(toast_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Toast {toast_id} not found",
        )
    return {"dismissed": toast_id}
