"""Timer API routes for LockPilot."""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ...scheduler import TimerScheduler

router = APIRouter()


def get_scheduler(request: Request) -> TimerScheduler:
    return request.app.state.scheduler


class CreateTimerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    target_time: str = Field(alias="targetTime")
    message: str | None = None


class CancelResponse(BaseModel):
    cancelled: bool


@router.post("/timers", status_code=201)
async def create_timer(request: CreateTimerRequest, scheduler: TimerScheduler = Depends(get_scheduler)):
    """Schedule a new timer."""
    timer = scheduler.create_timer(request.action, request.target_time, request.message)
    return timer.to_dict()


@router.get("/timers")
async def list_timers(scheduler: TimerScheduler = Depends(get_scheduler)):
    """List pending timers, soonest first."""
    return [timer.to_dict() for timer in scheduler.list_timers()]


@router.delete("/timers/{timer_id}", response_model=CancelResponse)
async def cancel_timer(timer_id: str, scheduler: TimerScheduler = Depends(get_scheduler)):
    """Cancel a pending timer. ``cancelled`` is false if it was not pending."""
    return CancelResponse(cancelled=scheduler.cancel_timer(timer_id))


@router.get("/health")
async def health(scheduler: TimerScheduler = Depends(get_scheduler)):
    """Scheduler statistics."""
    return scheduler.get_stats()
