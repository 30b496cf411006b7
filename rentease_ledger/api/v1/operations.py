"""/v1/operations - reconciliation anomaly queue for operators"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from rentease_ledger.api.dependencies import get_clock, require_operator
from rentease_ledger.api.v1.schemas import AnomalyResponse, ResolveAnomalyRequest
from rentease_ledger.infrastructure.database.models import ReconciliationAnomalyRecord
from rentease_ledger.infrastructure.database.repositories import AnomalyRepository
from rentease_ledger.infrastructure.database.session import get_db, transaction
from rentease_ledger.services.access import parse_uuid
from rentease_ledger.utils.date_utils import Clock

router = APIRouter(dependencies=[Depends(require_operator)])


@router.get("/operations/anomalies", response_model=List[AnomalyResponse])
def list_anomalies(
    include_resolved: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """
    Webhook deliveries that could not be applied cleanly, newest first.

    Returns:
        Open anomalies, or all of them with include_resolved=true
    """
    anomaly_repo = AnomalyRepository(db)
    return [AnomalyResponse.model_validate(a) for a in anomaly_repo.list(include_resolved, limit)]


@router.post("/operations/anomalies/{anomaly_id}/resolve", response_model=AnomalyResponse)
def resolve_anomaly(
    anomaly_id: str,
    request_body: ResolveAnomalyRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    anomaly_uuid = parse_uuid(anomaly_id, "anomaly ID")
    anomaly_repo = AnomalyRepository(db)

    with transaction(db):
        resolved = anomaly_repo.resolve(anomaly_uuid, clock(), request_body.note)

    anomaly = db.get(ReconciliationAnomalyRecord, anomaly_uuid)
    if anomaly is None:
        raise HTTPException(status_code=404, detail="Anomaly not found")
    if not resolved:
        raise HTTPException(status_code=409, detail="Anomaly already resolved")

    logging.info(f"Anomaly {anomaly_id} resolved", extra={"anomaly_id": anomaly_id, "kind": anomaly.kind})
    return AnomalyResponse.model_validate(anomaly)
