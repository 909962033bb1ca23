"""Anomaly detection and alert review endpoints."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from recon_engine.database import get_session
from recon_engine.models.recon import AlertSeverity, AlertState, AnomalyAlert
from recon_engine.services import AnomalyDetector, RecordStore

router = APIRouter(prefix="/api/anomalies", tags=["anomalies"])


class DetectionResponse(BaseModel):
    """Result of an anomaly detection run."""

    client_id: str
    alerts_created: int
    transactions_analyzed: int


class AlertResponse(BaseModel):
    """Alert information."""

    id: int
    client_id: str
    kind: str
    severity: str
    title: str
    description: str
    state: str
    reference_amount: int | None
    detected_amount: int | None
    transaction_id: str | None
    document_id: str | None
    extra: dict[str, Any] | None
    resolved_by: str | None
    resolved_at: datetime | None
    resolution_notes: str | None


class AlertStatsResponse(BaseModel):
    """Alert counts."""

    total: int
    open: int
    high: int
    medium: int
    low: int
    resolved: int
    dismissed: int


class CloseAlertRequest(BaseModel):
    """Dismiss or resolve an alert."""

    notes: str | None = None
    user_id: str | None = None


def get_detector(session: Annotated[AsyncSession, Depends(get_session)]) -> AnomalyDetector:
    return AnomalyDetector(RecordStore(session))


DetectorDep = Annotated[AnomalyDetector, Depends(get_detector)]


def _alert_response(a: AnomalyAlert) -> AlertResponse:
    return AlertResponse(
        id=a.id,
        client_id=a.client_id,
        kind=a.kind,
        severity=a.severity,
        title=a.title,
        description=a.description,
        state=a.state,
        reference_amount=a.reference_amount,
        detected_amount=a.detected_amount,
        transaction_id=a.transaction_id,
        document_id=a.document_id,
        extra=a.extra,
        resolved_by=a.resolved_by,
        resolved_at=a.resolved_at,
        resolution_notes=a.resolution_notes,
    )


@router.post("/clients/{client_id}/detect", response_model=DetectionResponse)
async def detect_anomalies(client_id: str, detector: DetectorDep):
    """Run anomaly rules over a client's transaction history."""
    result = await detector.detect(client_id)
    return DetectionResponse(**result.to_dict())


@router.get("/alerts", response_model=list[AlertResponse])
async def list_alerts(
    detector: DetectorDep,
    client_id: str | None = Query(None),
    state: AlertState | None = Query(None),
    severity: AlertSeverity | None = Query(None),
    limit: int | None = Query(None, le=1000),
):
    """List alerts, newest first."""
    alerts = await detector.list_alerts(
        client_id=client_id,
        state=state.value if state else None,
        severity=severity.value if severity else None,
        limit=limit,
    )
    return [_alert_response(a) for a in alerts]


@router.get("/stats", response_model=AlertStatsResponse)
async def get_alert_stats(detector: DetectorDep, client_id: str | None = Query(None)):
    """Alert counts by state and severity."""
    stats = await detector.alert_stats(client_id)
    return AlertStatsResponse(**stats.__dict__)


@router.post("/alerts/{alert_id}/review", response_model=AlertResponse)
async def review_alert(alert_id: int, detector: DetectorDep):
    """Mark an alert as reviewed."""
    return _alert_response(await detector.review_alert(alert_id))


@router.post("/alerts/{alert_id}/dismiss", response_model=AlertResponse)
async def dismiss_alert(
    alert_id: int,
    detector: DetectorDep,
    request: CloseAlertRequest | None = None,
):
    """Dismiss an alert."""
    request = request or CloseAlertRequest()
    alert = await detector.dismiss_alert(alert_id, notes=request.notes, user_id=request.user_id)
    return _alert_response(alert)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: int,
    detector: DetectorDep,
    request: CloseAlertRequest | None = None,
):
    """Resolve an alert."""
    request = request or CloseAlertRequest()
    alert = await detector.resolve_alert(alert_id, notes=request.notes, user_id=request.user_id)
    return _alert_response(alert)
