from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, Field, StrictInt

from clawtar.api.dependencies import get_container
from clawtar.services.container import ServiceContainer

router = APIRouter(tags=["Tasks"])


class TaskRequest(BaseModel):
    input: Any = None


class SettlementNotification(BaseModel):
    """Body of POST /v1/payments/callback"""
    task_id: str = Field(min_length=1)
    amount_sats: StrictInt
    payment_id: str = Field(min_length=1)
    idempotency_key: str = Field(min_length=1)
    proof: Optional[str] = None


@router.post("/v1/tasks", status_code=status.HTTP_201_CREATED)
async def submit_task(
    request: TaskRequest,
    container: ServiceContainer = Depends(get_container)
):
    """
    Create a task quoted at the default price
    The response carries the payment quote and a poll URL
    """
    return await container.tasks.submit(request.input)


@router.get("/v1/tasks/{task_id}")
async def get_task(task_id: str, container: ServiceContainer = Depends(get_container)):
    return container.tasks.get(task_id)


@router.post("/v1/payments/callback")
async def payment_callback(
    notification: SettlementNotification,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container)
):
    """
    Settlement notification from a payer or payment processor.

    Idempotent per ``idempotency_key``: an identical replay returns the
    original response flagged ``idempotent_replay``; the same key with a
    different (task, amount, payment) is rejected.
    """
    response, replay = await container.tasks.settle(
        task_id=notification.task_id,
        amount_sats=notification.amount_sats,
        payment_id=notification.payment_id,
        idempotency_key=notification.idempotency_key,
        proof=notification.proof,
    )
    if not replay:
        background_tasks.add_task(container.dispatcher.trigger)
    return response


@router.post("/v1/tasks/{task_id}/payment/refresh")
async def refresh_payment(
    task_id: str,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container)
):
    """Check the task's mint quote now instead of waiting for the poller"""
    response = await container.tasks.refresh_payment(task_id)
    background_tasks.add_task(container.dispatcher.trigger)
    return response
