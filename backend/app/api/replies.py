from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from backend.app.deps import RequestContext, get_context
from inboxie.replies.drafts import ReplyDrafter

router = APIRouter()


class QuickReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_id: str = Field(alias="emailId", min_length=1)
    user_response: str = Field(alias="userResponse", min_length=1)
    include_quoting: bool = Field(default=True, alias="includeQuoting")
    used_ai: bool = Field(default=False, alias="usedAI")
    ai_reply_method: str = Field(default="manual", alias="aiReplyMethod")


class GenerateReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_id: str = Field(alias="emailId", min_length=1)
    response_context: Optional[str] = Field(default=None, alias="responseContext")
    include_quoting: bool = Field(default=True, alias="includeQuoting")
    create_draft: bool = Field(default=True, alias="createDraft")


class ToneTrainingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analyze_count: int = Field(default=50, alias="analyzeCount", ge=5, le=500)


def _drafter(ctx: RequestContext) -> ReplyDrafter:
    return ReplyDrafter(ctx.services.gmail, ctx.services.llm, ctx.services.store)


@router.post("/replies/quick")
async def quick_reply(payload: QuickReplyRequest, ctx: RequestContext = Depends(get_context)) -> Dict[str, Any]:
    result = await run_in_threadpool(
        _drafter(ctx).quick_reply,
        ctx.user.user_id,
        payload.email_id,
        payload.user_response,
        include_quoting=payload.include_quoting,
        used_ai=payload.used_ai,
        ai_reply_method=payload.ai_reply_method,
    )
    data = result.to_dict()
    data.update({"originalEmailId": payload.email_id, "includeQuoting": payload.include_quoting})
    return {"success": True, "data": data, "message": "Quick reply draft created successfully"}


@router.post("/replies/generate")
async def generate_reply(payload: GenerateReplyRequest, ctx: RequestContext = Depends(get_context)) -> Dict[str, Any]:
    reply = await run_in_threadpool(
        _drafter(ctx).generate_reply,
        ctx.user.user_id,
        payload.email_id,
        context=payload.response_context,
        include_quoting=payload.include_quoting,
        create_draft=payload.create_draft,
    )
    return {
        "success": True,
        "data": {
            "generatedResponse": reply.text,
            "draft": reply.draft.to_dict() if reply.draft else None,
            "warnings": reply.warnings,
        },
        "message": "AI response generated successfully",
    }


@router.post("/tone/train")
async def train_tone(
    payload: Optional[ToneTrainingRequest] = None,
    ctx: RequestContext = Depends(get_context),
) -> Dict[str, Any]:
    payload = payload or ToneTrainingRequest()
    profile = await run_in_threadpool(_drafter(ctx).train_tone, ctx.user.user_id, payload.analyze_count)
    return {
        "success": True,
        "data": {
            "toneProfile": {
                "sentEmailsAnalyzed": profile.sent_emails_analyzed,
                "emailsRequested": payload.analyze_count,
                "formality": profile.formality,
                "length": profile.length,
                "style": profile.style,
                "commonPhrases": profile.common_phrases,
                "lastTraining": profile.last_training.isoformat(),
            }
        },
        "message": f"Tone profile trained successfully using {profile.sent_emails_analyzed} emails",
    }
