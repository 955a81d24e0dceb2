"""One-time removal of the previous generation of local-storage daemonsets.

Older operator releases ran one diskmaker and one provisioner daemonset per
LocalVolume (``local-volume-diskmaker-<name>``, ``local-volume-provisioner-<name>``)
plus a shared ``localvolumeset-local-provisioner``. They are all replaced by
the single ``diskmaker-manager`` daemonset, so they are deleted once and the
cleaner then waits until none of their pods are left running.

Deleting a daemonset does not stop its pods synchronously, the garbage
collector gets to them later. The only signal that the migration finished is
the pod count for the retired ``app`` labels reaching zero, counted across
all namespaces.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Set

from .backoff import Backoff, exponential_backoff
from .errors import BackoffExhausted, MalformedSelector, NotFoundError, StoreError, is_absent
from .k8s_client import ALL_NAMESPACES, ObjectStore
from .resources import APP_LABEL_KEY
from .schemas import CleanupState
from .selectors import label_in

log = logging.getLogger(__name__)

OLD_PROVISIONER_NAME = "localvolumeset-local-provisioner"
OLD_DISKMAKER_PREFIX = "local-volume-diskmaker-"
OLD_PROVISIONER_PREFIX = "local-volume-provisioner-"
LEGACY_PREFIXES = (OLD_DISKMAKER_PREFIX, OLD_PROVISIONER_PREFIX)


class LegacyCleaner:
    """Pending -> Deleting -> AwaitingDrain -> Done, for one namespace.

    ``Done`` is sticky for the lifetime of the instance. A failure anywhere
    puts the cleaner back to ``Pending`` and the next call starts over with a
    fresh scan, which is safe because deleting an absent daemonset counts as
    success.
    """

    def __init__(
        self,
        store: ObjectStore,
        namespace: str,
        backoff: Optional[Backoff] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.namespace = namespace
        self.backoff = backoff or Backoff.from_settings()
        self.sleep = sleep
        self.state = CleanupState.PENDING
        self.deletes_issued = 0
        self.drain_checks = 0

    @property
    def done(self) -> bool:
        return self.state is CleanupState.DONE

    def cleanup_once(self) -> CleanupState:
        if self.done:
            return self.state

        try:
            retiring = self._delete_legacy_daemonsets()
            self._await_drain(retiring)
        except Exception:
            self._enter(CleanupState.PENDING)
            raise

        self.state = CleanupState.DONE
        log.info("legacy daemonset cleanup finished in %s", self.namespace)
        return self.state

    def _enter(self, state: CleanupState) -> None:
        # an overlapping pass may have reached Done already; Done is never left
        if not self.done:
            self.state = state

    def _delete_legacy_daemonsets(self) -> Set[str]:
        self._enter(CleanupState.DELETING)

        try:
            daemonsets = self.store.list("DaemonSet", self.namespace)
        except StoreError:
            log.exception("could not list daemonsets in %s", self.namespace)
            raise

        # pods of the shared provisioner are waited on even if its daemonset is already gone
        retiring = {OLD_PROVISIONER_NAME}
        for ds in daemonsets:
            name = ds.metadata.name
            app = ds.metadata.labels.get(APP_LABEL_KEY)
            by_label = app is not None and app.startswith(LEGACY_PREFIXES)
            if not by_label and name != OLD_PROVISIONER_NAME:
                continue
            if app:
                retiring.add(app)

            log.info("old daemonset %r found, cleaning up", name)
            self.deletes_issued += 1
            try:
                self.store.delete(ds)
            except StoreError as e:
                if not is_absent(e):
                    log.error("could not delete daemonset %r: %s", name, e)
                    raise
                log.debug("daemonset %r already gone", name)

        return retiring

    def _await_drain(self, retiring: Set[str]) -> None:
        self._enter(CleanupState.AWAITING_DRAIN)

        try:
            selector = label_in(APP_LABEL_KEY, retiring)
        except MalformedSelector:
            log.exception("failed to compose label selector %s in %s", APP_LABEL_KEY, sorted(retiring))
            raise

        def drained() -> bool:
            self.drain_checks += 1
            try:
                pods = self.store.list("Pod", ALL_NAMESPACES, selector)
            except NotFoundError:
                pods = []
            log.info("waiting for 0 pods with label %s, found %d", selector, len(pods))
            return not pods

        try:
            exponential_backoff(self.backoff, drained, sleep=self.sleep)
        except BackoffExhausted:
            log.error("could not determine that old provisioner pods were deleted")
            raise
