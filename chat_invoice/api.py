"""FastAPI application exposing the message-to-invoice pipeline."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .engine import InvoiceEngine
from .schemas import BusinessProfile, Invoice, ParseFailure

app = FastAPI(title="Chat Invoice Engine", version="0.1.0")


class ParseMessageRequest(BaseModel):
    message: str
    profile: BusinessProfile = Field(default_factory=BusinessProfile)
    create_order: bool = False


@lru_cache
def get_engine() -> InvoiceEngine:
    return InvoiceEngine.from_settings(get_settings())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post(
    "/invoices/parse",
    response_model=Invoice,
    response_model_by_alias=True,
    responses={422: {"model": ParseFailure}},
)
def parse_message(request: ParseMessageRequest, engine: InvoiceEngine = Depends(get_engine)):
    result = engine.process_message(request.message, request.profile, create_order=request.create_order)
    if isinstance(result, ParseFailure):
        return JSONResponse(status_code=422, content=result.model_dump(mode="json", by_alias=True))
    return result
