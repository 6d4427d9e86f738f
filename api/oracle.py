from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from services.llm import LLMError, analyze_request
from services.models import OracleRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["oracle"])


@router.post("/analyze-sentiment")
def analyze_sentiment(body: OracleRequest):
    text = body.text or ""
    if not text.strip():
        return JSONResponse(status_code=400, content={"error": "No text provided for analysis"})

    try:
        return analyze_request(text, mode=body.mode)
    except LLMError as exc:
        logger.error("analyze-sentiment mode=%s failed: %s", body.mode or "score", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
