"""
Push routes — batch message sends for the admin console.

Route prefix: /api/toss/push
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from api.dependencies import get_dispatcher
from api.responses import success_response
from provider.dispatcher import BatchDispatcher

router = APIRouter(tags=["toss-push"])


class SendMessageRequest(BaseModel):
    user_keys: Optional[List[Any]] = None
    template_set_code: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


@router.post("/send-message")
async def send_message(
    req: SendMessageRequest,
    dispatcher: BatchDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """
    Send one template to every user in ``userKeys``.

    Always answers 200 once the batch ran; per-user failures are in
    ``results`` and counted in ``summary``.
    """
    report = await dispatcher.send_batch(req.user_keys or [], req.template_set_code, req.context)
    summary = report.summary
    return success_response(
        {
            "results": [r.model_dump(by_alias=True, exclude_none=True) for r in report.results],
            "summary": summary.model_dump(),
        },
        f"Push send complete: {summary.success} succeeded, {summary.failed} failed",
    )
