# routers/analysis_routes.py
"""
FastAPI routes for the trade-signal pipeline.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from config.pipeline_config import ConfigError, PipelineConfig
from middleware.rate_limit import ANALYZE_RATE_LIMIT, BATCH_RATE_LIMIT, limiter
from schemas.analysis import AnalysisInput, AnalysisResult, BatchItemResult
from services.analysis.orchestrator import AnalysisOrchestrator, AnalyzeOptions
from services.analysis.position_memory import InMemoryPositionMemoryReader
from services.llm.llm_service import LLMUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_BATCH_ITEMS = 20


# ============================================================================
# REQUEST MODELS
# ============================================================================

class AnalyzeRequest(BaseModel):
    item: AnalysisInput
    as_of: Optional[str] = None
    # prior analyses to use as read-only position memory
    memory_records: Optional[List[Dict[str, Any]]] = None


class BatchAnalyzeRequest(BaseModel):
    items: List[AnalysisInput] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)
    as_of: Optional[str] = None
    memory_records: Optional[List[Dict[str, Any]]] = None


# ============================================================================
# DEPENDENCIES
# ============================================================================

@lru_cache(maxsize=1)
def _build_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(PipelineConfig.from_env())


def get_orchestrator() -> AnalysisOrchestrator:
    try:
        return _build_orchestrator()
    except (ConfigError, ValueError) as e:
        logger.error("orchestrator_unavailable err=%s", e)
        raise HTTPException(status_code=503, detail="Analysis service is not configured")


def _options(as_of: Optional[str], records: Optional[List[Dict[str, Any]]]) -> AnalyzeOptions:
    reader = InMemoryPositionMemoryReader(records) if records else None
    return AnalyzeOptions(position_memory_reader=reader, as_of=as_of)


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("", response_model=AnalysisResult)
@limiter.limit(ANALYZE_RATE_LIMIT)
async def analyze_item(
    request: Request,
    body: AnalyzeRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Run the full pipeline for one news item or scheduled event."""
    try:
        result = await orchestrator.analyze(body.item, _options(body.as_of, body.memory_records))
    except LLMUnavailableError as e:
        logger.warning("analysis_llm_unavailable item_type=%s err=%s", body.item.item_type, e)
        raise HTTPException(status_code=503, detail="LLM service unavailable")
    except Exception as e:
        logger.exception("analysis_failed item_type=%s: %s", body.item.item_type, e)
        raise HTTPException(status_code=500, detail="Analysis failed")

    logger.info(
        "analysis_completed item_type=%s decision=%s early_exit=%s",
        body.item.item_type,
        result.stage3.trade_decision,
        result.pipeline.early_exit,
    )
    return result


@router.post("/batch", response_model=List[BatchItemResult])
@limiter.limit(BATCH_RATE_LIMIT)
async def analyze_batch(
    request: Request,
    body: BatchAnalyzeRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Analyze items one after another; per-item failures are reported inline."""
    results = await orchestrator.analyze_batch(body.items, _options(body.as_of, body.memory_records))
    logger.info(
        "analysis_batch_completed items=%s failed=%s",
        len(results),
        sum(1 for r in results if r.error),
    )
    return results


@router.get("/health")
async def health():
    return {"status": "ok"}
