from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from clawtar.api.dependencies import get_container
from clawtar.services.container import ServiceContainer

router = APIRouter(prefix="/v1/clawtar", tags=["Clawtar"])

NO_STORE = {"cache-control": "no-store"}


class AskRequest(BaseModel):
    question: Any = None
    style: Any = None


@router.post("/ask")
async def ask(
    background_tasks: BackgroundTasks,
    request: Optional[AskRequest] = None,
    x_cashu: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container)
):
    """
    Pay-per-call fortune.

    Without an ``X-Cashu`` token the response is 402 with a NUT-18 payment
    request in the ``x-cashu`` header. With a token worth at least the price,
    the fortune is returned in the same response.
    """
    request = request or AskRequest()
    fortune = container.fortune
    question, style = fortune.validate_request(
        request.question,
        request.style,
        style_provided="style" in request.model_fields_set,
    )

    token = (x_cashu or "").strip()
    if not token:
        encoded, body = fortune.challenge()
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content=body,
            headers={"x-cashu": encoded},
        )

    response = await fortune.ask(question, style, token)
    background_tasks.add_task(fortune.announce, response["reading_id"])
    return response


@router.get("/recent")
async def recent(
    response: Response,
    limit: str = "20",
    before: Optional[int] = None,
    container: ServiceContainer = Depends(get_container)
):
    response.headers.update(NO_STORE)
    return container.fortune.recent(limit, before)


@router.get("/stats")
async def stats(response: Response, container: ServiceContainer = Depends(get_container)):
    response.headers.update(NO_STORE)
    return container.fortune.stats()


@router.get("/readings/{reading_id}")
async def get_reading(reading_id: str, container: ServiceContainer = Depends(get_container)):
    return container.fortune.get_reading(reading_id)
