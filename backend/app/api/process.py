# backend/app/api/process.py
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from backend.app.deps import RequestContext, get_context
from backend.app.errors import error_response
from backend.app.status import run_status_store
from inboxie.app.run import process_mailbox
from inboxie.app.stats import user_stats

router = APIRouter()


class ProcessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_size: Optional[int] = Field(default=None, alias="batchSize", ge=1, le=100)
    email_limit: Optional[int] = Field(default=None, alias="emailLimit", ge=1)


@router.post("/process")
async def process_endpoint(
    payload: Optional[ProcessRequest] = None,
    ctx: RequestContext = Depends(get_context),
) -> Any:
    payload = payload or ProcessRequest()
    user_id = ctx.user.user_id
    run_status_store.begin(user_id)

    def progress_cb(step: str, event: Dict[str, Any]) -> None:
        status_update: Dict[str, Any] = {"state": "running", "step": step, "detail": event.get("detail")}
        if "metrics" in event:
            status_update["metrics"] = event.get("metrics") or {}
        run_status_store.update(user_id, **status_update)

    try:
        summary = await process_mailbox(
            ctx.services,
            user_id,
            label_prefix=ctx.settings.label_prefix,
            batch_size=payload.batch_size,
            email_limit=payload.email_limit,
            progress_cb=progress_cb,
        )
    except Exception as exc:
        run_status_store.update(user_id, state="error", step="error", detail=str(exc))
        raise

    data = asdict(summary)
    run_status_store.update(
        user_id,
        state="error" if summary.error else "done",
        step="done",
        detail=f"Run finished: {summary.status}",
        summary=data,
        recent_errors=[summary.error] if summary.error else [],
    )

    if summary.error:
        return error_response(summary.error, summary=data)
    return {
        "success": True,
        "data": data,
        "message": f"Processed {summary.processed} emails in {summary.batches} batches",
    }


@router.get("/process/status")
async def process_status(ctx: RequestContext = Depends(get_context)) -> Dict[str, Any]:
    return {"success": True, "data": run_status_store.snapshot(ctx.user.user_id), "message": "Run status"}


@router.get("/stats")
async def stats_endpoint(ctx: RequestContext = Depends(get_context)) -> Dict[str, Any]:
    data = await run_in_threadpool(user_stats, ctx.services.store, ctx.user.user_id)
    data["user"] = {"id": ctx.user.user_id, "email": ctx.user.email}
    return {"success": True, "data": data, "message": "User stats"}
