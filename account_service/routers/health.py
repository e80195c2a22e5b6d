from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from account_service.models import HealthOut

router = APIRouter(tags=["health"])


@router.get("/actuator/health", response_model=HealthOut)
def health(request: Request):
    db_up = request.app.state.database.ping()
    body = HealthOut(
        status="UP" if db_up else "DOWN",
        components={"db": {"status": "UP" if db_up else "DOWN"}},
    )
    if not db_up:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
