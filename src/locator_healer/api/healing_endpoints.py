"""
Healing API endpoints for the locator healing engine.

This module exposes the healing service to collaborators running in other
processes: healing requests, usage feedback, externally healed results,
and the healing report and cache statistics.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.config_loader import ConfigurationError, get_healing_config
from ..core.healing_utils import classify_failure, is_healable
from ..core.models import Candidate, FallbackLocator, LocatorKind, Platform
from ..services.healing_report import HealingReport
from ..services.healing_service import LocatorHealingService
from ..services.locator_cache import LocatorCache

logger = logging.getLogger(__name__)

# Process-wide healing service, created on first use
_healing_service: Optional[LocatorHealingService] = None

router = APIRouter(prefix="/healing", tags=["healing"])


# Pydantic models for API requests/responses
class LocatorRequest(BaseModel):
    locator_type: str = Field(..., description="Original locator kind, e.g. 'id' or 'accessibilityId'")
    locator_value: str = Field("", description="Original locator value, may be empty if key is set")
    semantic_key: Optional[str] = Field(None, description="Page-object property name of the locator")


class HealRequest(LocatorRequest):
    page_source: str = Field(..., description="Current UI-tree snapshot (XML or HTML)")
    test_name: Optional[str] = None
    action_description: Optional[str] = None


class FeedbackRequest(LocatorRequest):
    success: bool


class FallbackModel(BaseModel):
    kind: str
    value: str


class CandidateModel(BaseModel):
    strategy: str
    value: str
    score: float = Field(..., ge=0.0, le=1.0)
    platform: str = Platform.UNKNOWN.value
    strategy_name: str = ""
    fallbacks: List[FallbackModel] = []


class ExternalResultRequest(LocatorRequest):
    candidate: CandidateModel
    test_name: Optional[str] = None
    action_description: Optional[str] = None
    elapsed_seconds: float = Field(0.0, ge=0.0)


class ClassifyRequest(BaseModel):
    exception_type: str
    exception_message: str = ""


class HealResponse(BaseModel):
    healed: bool
    source: Optional[str] = None
    cache_key: str
    status: str
    candidate: Optional[CandidateModel] = None
    alternatives: List[str] = []
    search_value: Optional[str] = None
    nodes_processed: int = 0
    elapsed_seconds: float = 0.0


def get_healing_service() -> LocatorHealingService:
    """Get or create the process-wide healing service."""
    global _healing_service

    if _healing_service is None:
        try:
            config = get_healing_config()
        except ConfigurationError as e:
            logger.error(f"Failed to load locator healing configuration: {e}")
            raise HTTPException(status_code=500, detail=f"Invalid healing configuration: {e}")

        _healing_service = LocatorHealingService(
            cache=LocatorCache.from_config(config),
            report=HealingReport(),
            config=config
        )
        logger.info("🚀 Locator healing service initialized")

    return _healing_service


def _to_candidate(model: CandidateModel) -> Candidate:
    try:
        platform = Platform(model.platform.upper())
    except ValueError:
        platform = Platform.UNKNOWN

    return Candidate(
        strategy=LocatorKind.normalize(model.strategy),
        value=model.value,
        score=model.score,
        platform=platform,
        fallbacks=tuple(
            FallbackLocator(LocatorKind.normalize(fallback.kind), fallback.value)
            for fallback in model.fallbacks
        ),
        strategy_name=model.strategy_name or "external"
    )


def _to_model(candidate: Candidate) -> CandidateModel:
    return CandidateModel(**candidate.to_dict())


@router.post("/heal", response_model=HealResponse)
async def heal_locator(request: HealRequest,
                       service: LocatorHealingService = Depends(get_healing_service)):
    """Heal a broken locator against the supplied snapshot."""
    attempt = service.attempt(
        request.locator_type,
        request.locator_value,
        request.page_source,
        semantic_key=request.semantic_key,
        test_name=request.test_name,
        action_description=request.action_description
    )

    if attempt.outcome is not None:
        status = attempt.outcome.status.value
    else:
        status = "cached"

    return HealResponse(
        healed=attempt.healed,
        source=attempt.source.value if attempt.source else None,
        cache_key=attempt.cache_key,
        status=status,
        candidate=_to_model(attempt.candidate) if attempt.candidate else None,
        alternatives=attempt.candidate.fallback_strings() if attempt.candidate else [],
        search_value=attempt.outcome.search_value if attempt.outcome else None,
        nodes_processed=attempt.outcome.nodes_processed if attempt.outcome else 0,
        elapsed_seconds=attempt.elapsed_seconds
    )


@router.post("/feedback")
async def report_usage(request: FeedbackRequest,
                       service: LocatorHealingService = Depends(get_healing_service)):
    """Report whether a healed locator worked."""
    service.report_usage(request.locator_type, request.locator_value, request.success,
                         semantic_key=request.semantic_key)
    return {"status": "success"}


@router.post("/external")
async def record_external_result(request: ExternalResultRequest,
                                 service: LocatorHealingService = Depends(get_healing_service)):
    """Store a locator healed outside the engine (AI, OCR)."""
    cache_key = service.record_external(
        request.locator_type,
        request.locator_value,
        _to_candidate(request.candidate),
        semantic_key=request.semantic_key,
        test_name=request.test_name,
        action_description=request.action_description,
        elapsed_seconds=request.elapsed_seconds
    )
    return {"status": "success", "cache_key": cache_key}


@router.post("/classify")
async def classify(request: ClassifyRequest):
    """Classify a driver failure and say whether healing is worth trying."""
    classification = classify_failure(request.exception_type, request.exception_message)
    return {
        "failure_type": classification.failure_type.name,
        "description": classification.description,
        "severity": classification.severity.value,
        "recoverable": classification.recoverable,
        "healable": is_healable(classification)
    }


@router.get("/report")
async def get_report(simplified: bool = True,
                     service: LocatorHealingService = Depends(get_healing_service)) -> Dict[str, Any]:
    """Get the healing report in simplified or full form."""
    if simplified:
        return service.report.simplified_report()
    return service.report.full_report(cache_stats=service.cache.stats())


@router.get("/summary")
async def get_summary(service: LocatorHealingService = Depends(get_healing_service)):
    """Get aggregate healing statistics for the session."""
    return service.report.summary()


@router.get("/cache/stats")
async def get_cache_stats(service: LocatorHealingService = Depends(get_healing_service)):
    """Get result cache statistics."""
    return service.cache.stats()


@router.delete("/cache")
async def clear_cache(service: LocatorHealingService = Depends(get_healing_service)):
    """Drop every cached healing result."""
    service.cache.clear()
    return {"status": "success", "message": "Locator cache cleared"}


@router.delete("/report")
async def clear_report(service: LocatorHealingService = Depends(get_healing_service)):
    """Clear the healing report and start a new session."""
    service.report.clear()
    return {"status": "success", "message": "Healing report cleared"}
