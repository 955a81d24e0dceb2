"""Keeps the diskmaker-manager fleet of a namespace in line with its LocalVolumeSets and LocalVolumes."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple

from .backoff import Backoff
from .cleanup import LegacyCleaner
from .config import settings
from .errors import FleetError, NotFoundError
from .hashing import data_hash
from .k8s_client import ObjectStore
from .resources import (
    DATA_HASH_ANNOTATION_KEY,
    DISKMAKER_NAME,
    PROVISIONER_CONFIG_NAME,
    aggregate_desired_state,
    config_map_mutate_fn,
    diskmaker_mutate_fn,
)
from .schemas import ConfigMap, DaemonSet, FleetSnapshot, ReconcileReport
from .upsert import ObjectKey, create_or_update

log = logging.getLogger(__name__)


class _RequestLogger(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['namespace']}] {msg}", kwargs


class FleetReconciler:
    """Runs reconciliation passes, one namespace at a time per call.

    The only state kept between passes is one LegacyCleaner per namespace,
    so its "done" latch survives for as long as this object does. Everything
    else is re-read from the cluster on every pass. No locks are taken:
    passes for different namespaces may run concurrently, and repeated passes
    for the same namespace are harmless because every write is idempotent.
    """

    def __init__(
        self,
        store: ObjectStore,
        image: Optional[str] = None,
        backoff: Optional[Backoff] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.image = image or settings.diskmaker_image
        self.backoff = backoff or Backoff.from_settings()
        self.sleep = sleep
        self._cleaners: Dict[str, LegacyCleaner] = {}

    def cleaner_for(self, namespace: str) -> LegacyCleaner:
        cleaner = self._cleaners.get(namespace)
        if cleaner is None:
            cleaner = self._cleaners.setdefault(
                namespace,
                LegacyCleaner(self.store, namespace, backoff=self.backoff, sleep=self.sleep),
            )
        return cleaner

    def reconcile(self, namespace: str) -> ReconcileReport:
        req_log = _RequestLogger(log, {"namespace": namespace})
        try:
            return self._reconcile(namespace, req_log)
        except FleetError as e:
            req_log.error("reconcile failed: %s", e)
            raise

    def _reconcile(self, namespace: str, req_log: logging.LoggerAdapter) -> ReconcileReport:
        # one-time delete of the old per-LocalVolume daemonsets
        cleaner = self.cleaner_for(namespace)
        cleaner.cleanup_once()

        desired = aggregate_desired_state(self.store, namespace)
        if desired.is_empty:
            req_log.debug("no LocalVolumeSets or LocalVolumes, nothing to manage")
            return ReconcileReport(namespace=namespace, cleanup_state=cleaner.state, skipped=True)

        config_map, config_result = create_or_update(
            self.store,
            ConfigMap,
            ObjectKey("ConfigMap", namespace, PROVISIONER_CONFIG_NAME),
            config_map_mutate_fn(desired),
        )
        if config_result.changed:
            req_log.info("provisioner configmap changed (%s)", config_result.value)

        config_hash = data_hash(config_map.data)

        ds, ds_result = create_or_update(
            self.store,
            DaemonSet,
            ObjectKey("DaemonSet", namespace, DISKMAKER_NAME),
            diskmaker_mutate_fn(
                namespace,
                desired.tolerations,
                desired.owner_references,
                desired.node_selector,
                config_hash,
                self.image,
            ),
        )
        if ds_result.changed:
            req_log.info("daemonset %s changed (%s)", ds.metadata.name, ds_result.value)

        return ReconcileReport(
            namespace=namespace,
            cleanup_state=cleaner.state,
            config_result=config_result,
            daemonset_result=ds_result,
            config_hash=config_hash,
        )

    def snapshot(self, namespace: str) -> FleetSnapshot:
        """Read back the managed objects and report whether the daemonset has caught up with the config."""
        config_hash = None
        ds_hash = None
        try:
            config_map = self.store.get("ConfigMap", namespace, PROVISIONER_CONFIG_NAME)
            config_hash = data_hash(config_map.data)
        except NotFoundError:
            pass
        try:
            ds = self.store.get("DaemonSet", namespace, DISKMAKER_NAME)
            ds_hash = ds.metadata.annotations.get(DATA_HASH_ANNOTATION_KEY)
        except NotFoundError:
            pass

        return FleetSnapshot(
            namespace=namespace,
            cleanup_state=self.cleaner_for(namespace).state,
            config_hash=config_hash,
            daemonset_hash=ds_hash,
            in_sync=config_hash is not None and config_hash == ds_hash,
        )
