# backend/routers/fleet.py

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.services.reconcile_service import get_reconciler
from fleetctl.config import settings
from fleetctl.errors import FleetError
from fleetctl.reconciler import FleetReconciler
from fleetctl.schemas import FleetSnapshot

router = APIRouter(tags=["Fleet Snapshot"])


@router.get("/fleet", response_model=FleetSnapshot)
def get_fleet(
    namespace: str | None = Query(None, description="Namespace, defaults to K8S_NAMESPACE"),
    reconciler: FleetReconciler = Depends(get_reconciler),
):
    """
    Config hash vs. the daemonset's hash annotation, plus legacy cleanup state.
    """
    ns = namespace or settings.k8s_namespace
    try:
        return reconciler.snapshot(ns)
    except FleetError as e:
        raise HTTPException(status_code=502, detail=str(e))
