# ffnews/main.py
"""
FF news ingestion service.

This file:
- Exposes GET /probe for evaluating an unconfigured site (read-only)
- Exposes GET /sources/{id}/preview for a dry-run fetch of a configured source
- Exposes POST /ingest which runs one source or all of them and returns the counts
- Maps ConfigurationError to 400 and unknown sources to 404 instead of a bare 500
"""
from __future__ import annotations
import threading
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ffnews import db
from ffnews.config import DEFAULT_ITEM_LIMIT, INGEST_WORKERS, PREVIEW_CAP, setup_logging
from ffnews.errors import ConfigurationError
from ffnews.ingest import IngestContext, ingest_all, ingest_source, preview_source, recheck_images
from ffnews.probe import probe


METHOD_PATTERN = "^(rss|scrape|adapter)$"

setup_logging()
app = FastAPI(title="FF News Ingest")

_ctx_lock = threading.Lock()


def get_context() -> IngestContext:
    """One IngestContext per process, built on first use."""
    with _ctx_lock:
        ctx = getattr(app.state, "ctx", None)
        if ctx is None:
            ctx = IngestContext()
            app.state.ctx = ctx
        return ctx


class IngestRequest(BaseModel):
    source_id: Optional[int] = None
    limit: int = Field(DEFAULT_ITEM_LIMIT, ge=1, le=500)
    workers: int = Field(INGEST_WORKERS, ge=1, le=8)
    method: Optional[str] = Field(None, pattern=METHOD_PATTERN)


def _require_source(ctx: IngestContext, source_id: int) -> None:
    if db.get_source(source_id, ctx.db_path) is None:
        raise HTTPException(status_code=404, detail=f"unknown source {source_id}")


@app.get("/health")
@app.get("/healthz")
def _health():
    return {"status": "ok"}


@app.get("/probe")
def _probe(url: str = Query(..., min_length=4), ctx: IngestContext = Depends(get_context)):
    result = probe(ctx.client, url)
    return JSONResponse(result.model_dump())


@app.get("/sources/{source_id}/preview")
def _preview(
    source_id: int,
    limit: int = Query(20, ge=1, le=PREVIEW_CAP),
    method: Optional[str] = Query(None, pattern=METHOD_PATTERN),
    ctx: IngestContext = Depends(get_context),
):
    _require_source(ctx, source_id)
    try:
        used, items = preview_source(ctx, source_id, limit=limit, method=method)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse({
        "source_id": source_id,
        "method": used,
        "items": [it.model_dump() for it in items],
        "count": len(items),
    })


@app.post("/ingest")
def _ingest(req: IngestRequest, ctx: IngestContext = Depends(get_context)):
    if req.source_id is not None:
        _require_source(ctx, req.source_id)
        try:
            summary = ingest_source(ctx, req.source_id, limit=req.limit, method=req.method)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        if req.method:
            raise HTTPException(status_code=400, detail="method requires source_id")
        summary = ingest_all(ctx, workers=req.workers, limit=req.limit)
    return JSONResponse(summary.model_dump())


@app.post("/images/recheck")
def _recheck(older_than_days: int = Query(7, ge=0), ctx: IngestContext = Depends(get_context)):
    purged = recheck_images(older_than_days, db_path=ctx.db_path)
    body: Dict[str, Any] = {"purged": purged, "older_than_days": older_than_days}
    return body
