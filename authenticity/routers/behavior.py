"""Behaviour API endpoints: scan-pattern anomaly analysis per user."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from authenticity.config import get_settings
from authenticity.database import get_record_store
from authenticity.schemas.behavior import (
    BehaviorAnalysisRequest,
    BehaviorAnomalyResult,
    UserScanStatistics,
)
from authenticity.services.behavior_analyzer import analyze_user_behavior, get_user_scan_statistics
from authenticity.services.record_store import SqlRecordStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/behavior/analyze", response_model=BehaviorAnomalyResult)
async def analyze_behavior(request: BehaviorAnalysisRequest):
    """Analyze a caller-supplied scan history."""
    return analyze_user_behavior(
        request.user_id, request.scan_history, request.user_role, request.org_id
    )


@router.get("/behavior/{user_id}", response_model=BehaviorAnomalyResult)
async def get_user_behavior(
    user_id: str,
    user_role: str | None = Query(None),
    org_id: str | None = Query(None),
    store: SqlRecordStore = Depends(get_record_store),
):
    """Analyze the stored scan log of a user."""
    history = store.get_scan_history(user_id, get_settings().scan_history_limit)
    return analyze_user_behavior(user_id, history, user_role, org_id)


@router.get("/behavior/{user_id}/statistics", response_model=UserScanStatistics)
async def get_user_statistics(
    user_id: str,
    user_role: str | None = Query(None),
    org_id: str | None = Query(None),
    store: SqlRecordStore = Depends(get_record_store),
):
    history = store.get_scan_history(user_id, get_settings().scan_history_limit)
    stats = get_user_scan_statistics(user_id, history, user_role, org_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No scan history for user {user_id}")
    return stats
