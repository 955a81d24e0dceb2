# backend/routers/reconcile.py

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.services.reconcile_service import get_reconciler
from fleetctl.config import settings
from fleetctl.errors import (
    BackoffExhausted,
    ConflictError,
    FleetError,
    TransientStoreError,
)
from fleetctl.reconciler import FleetReconciler
from fleetctl.schemas import ReconcileReport

router = APIRouter(tags=["Reconcile"])


class ReconcileRequest(BaseModel):
    namespace: str | None = None


def _status_for(err: FleetError) -> int:
    if isinstance(err, (TransientStoreError, ConflictError)):
        return 503
    if isinstance(err, BackoffExhausted):
        return 504
    return 500


@router.post("/reconcile", response_model=ReconcileReport)
def reconcile(req: ReconcileRequest, reconciler: FleetReconciler = Depends(get_reconciler)):
    """
    Run one reconciliation pass for a namespace.

    A non-2xx answer means the pass was aborted; the caller should trigger
    it again later, every step is safe to repeat.
    """
    ns = req.namespace or settings.k8s_namespace
    try:
        return reconciler.reconcile(ns)
    except FleetError as e:
        raise HTTPException(status_code=_status_for(e), detail=f"reconcile of {ns!r} failed: {e}")
