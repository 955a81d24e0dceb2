from fleetctl.k8s_client import K8sClient
from fleetctl.reconciler import FleetReconciler


class ReconcileService:
    """
    Process-wide holder for the FleetReconciler.

    The reconciler keeps the legacy-cleanup latch for each namespace, so
    every request has to go through the same instance. It is built on first
    use so a missing K8S_API_BASE_URL doesn't crash import.
    """

    def __init__(self):
        self._reconciler: FleetReconciler | None = None

    @property
    def reconciler(self) -> FleetReconciler:
        if self._reconciler is None:
            self._reconciler = FleetReconciler(K8sClient())
        return self._reconciler


# Shared singleton instance
reconcile_service = ReconcileService()


def get_reconciler() -> FleetReconciler:
    return reconcile_service.reconciler
