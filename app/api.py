from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query as QueryParam, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dashgen.errors import ConfigurationError, UpstreamServiceError, ValidationError
from dashgen.logger import setup_logging
from dashgen.pipeline import DashboardPipeline, build_pipeline
from dashgen.registry import UnknownRouteError
from dashgen.types import DashboardRequest, ErrorResponse, Sublink

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Dashboard Generator", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SublinkResolveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sublink: Sublink
    current_data: List[Dict[str, Any]] = Field(default_factory=list, alias="currentData")


@lru_cache(maxsize=1)
def get_pipeline() -> DashboardPipeline:
    return build_pipeline()


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(ValidationError)
async def validation_failed(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning("Rejected %s: %s", request.url.path, exc)
    return _error(422, ErrorResponse(error=exc.code, errors=exc.errors))


@app.exception_handler(UpstreamServiceError)
async def upstream_failed(request: Request, exc: UpstreamServiceError) -> JSONResponse:
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return _error(502, ErrorResponse(error=exc.code, details=str(exc)))


@app.exception_handler(ConfigurationError)
async def misconfigured(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return _error(500, ErrorResponse(error=exc.code, details=str(exc)))


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/dashboard")
async def dashboard(request: DashboardRequest) -> JSONResponse:
    pipeline = get_pipeline()
    document = await pipeline.process(request.to_query())
    return JSONResponse(content=document.to_payload())


@app.post("/sublinks/resolve")
async def resolve_sublink(request: SublinkResolveRequest) -> dict:
    pipeline = get_pipeline()
    try:
        result = pipeline.follow_sublink(request.sublink, request.current_data)
    except UnknownRouteError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "title": result.title,
        "description": result.description,
        "chartType": result.chart_type.value,
        "data": result.data,
    }


@app.get("/memory/{caller_id}/recent")
async def recent_memory(caller_id: str, limit: int = QueryParam(default=10, ge=1, le=100)) -> List[dict]:
    pipeline = get_pipeline()
    if pipeline.memory is None:
        raise HTTPException(status_code=404, detail="Memory is not enabled.")
    chunks = await pipeline.memory.recent(caller_id, limit)
    return [chunk.model_dump() for chunk in chunks]
