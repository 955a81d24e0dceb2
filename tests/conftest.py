"""Shared fixtures: an in-memory object store and factories for cluster objects."""

from __future__ import annotations

import itertools
import uuid
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from fleetctl.backoff import Backoff
from fleetctl.errors import ConflictError, NotFoundError
from fleetctl.k8s_client import ALL_NAMESPACES
from fleetctl.schemas import (
    DaemonSet,
    KubeObject,
    LocalVolume,
    LocalVolumeSet,
    ObjectMeta,
    Pod,
)
from fleetctl.selectors import LabelSelector

NAMESPACE = "openshift-local-storage"


class FakeStore:
    """Dict-backed stand-in for K8sClient.

    Behaves like the apiserver where it matters for the reconciler: assigns
    uid/resourceVersion/creationTimestamp, rejects stale updates, defaults a
    field in daemonset pod templates and returns copies, never the stored
    object itself.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], KubeObject] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.errors: Dict[Tuple[str, str], Exception] = {}
        self.pod_list_hook: Optional[Callable[["FakeStore"], None]] = None
        self._versions = itertools.count(1)

    # -- helpers used by tests --

    def add(self, obj: KubeObject) -> KubeObject:
        stored = obj.model_copy(deep=True)
        self._stamp(stored)
        self.objects[self._key(stored)] = stored
        return stored.model_copy(deep=True)

    def stored(self, kind: str, namespace: str, name: str) -> Optional[KubeObject]:
        obj = self.objects.get((kind, namespace, name))
        return obj.model_copy(deep=True) if obj is not None else None

    def ops(self, *names: str) -> List[Tuple[str, str, Optional[str]]]:
        return [c for c in self.calls if c[0] in names]

    def writes(self) -> List[Tuple[str, str, Optional[str]]]:
        return self.ops("create", "update", "delete")

    # -- ObjectStore --

    def list(self, kind: str, namespace: Optional[str] = None, selector: Optional[LabelSelector] = None):
        self._record("list", kind, namespace)
        if kind == "Pod" and self.pod_list_hook is not None:
            self.pod_list_hook(self)
        out = []
        for (k, ns, _), obj in sorted(self.objects.items()):
            if k != kind or (namespace not in (None, ALL_NAMESPACES) and ns != namespace):
                continue
            if selector is not None and not selector.matches(obj.metadata.labels):
                continue
            out.append(obj.model_copy(deep=True))
        return out

    def get(self, kind: str, namespace: Optional[str], name: str):
        self._record("get", kind, name)
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind} {name!r} not found", status_code=404, reason="NotFound")
        return obj.model_copy(deep=True)

    def create(self, obj: KubeObject):
        self._record("create", obj.kind, obj.metadata.name)
        key = self._key(obj)
        if key in self.objects:
            raise ConflictError(f"{obj.kind} {obj.metadata.name!r} already exists", status_code=409)
        stored = obj.model_copy(deep=True)
        self._stamp(stored)
        if isinstance(stored, DaemonSet):
            pod_spec = stored.spec.setdefault("template", {}).setdefault("spec", {})
            pod_spec.setdefault("dnsPolicy", "ClusterFirst")
            stored.status = {"numberReady": 0}
        self.objects[key] = stored
        return stored.model_copy(deep=True)

    def update(self, obj: KubeObject):
        self._record("update", obj.kind, obj.metadata.name)
        key = self._key(obj)
        current = self.objects.get(key)
        if current is None:
            raise NotFoundError(f"{obj.kind} {obj.metadata.name!r} not found", status_code=404)
        if obj.metadata.resource_version != current.metadata.resource_version:
            raise ConflictError("the object has been modified", status_code=409, reason="Conflict")
        stored = obj.model_copy(deep=True)
        stored.metadata.resource_version = str(next(self._versions))
        self.objects[key] = stored
        return stored.model_copy(deep=True)

    def delete(self, obj: KubeObject):
        self._record("delete", obj.kind, obj.metadata.name)
        key = self._key(obj)
        if key not in self.objects:
            raise NotFoundError(f"{obj.kind} {obj.metadata.name!r} not found", status_code=404)
        del self.objects[key]

    # -- internals --

    def _record(self, op: str, kind: str, name: Optional[str]) -> None:
        self.calls.append((op, kind, name))
        err = self.errors.get((op, kind))
        if err is not None:
            raise err

    def _stamp(self, obj: KubeObject) -> None:
        obj.metadata.uid = obj.metadata.uid or str(uuid.uuid4())
        obj.metadata.resource_version = str(next(self._versions))
        obj.metadata.creation_timestamp = obj.metadata.creation_timestamp or "2024-01-15T08:30:00Z"

    @staticmethod
    def _key(obj: KubeObject) -> Tuple[str, str, str]:
        return (obj.kind, obj.metadata.namespace, obj.metadata.name)


@pytest.fixture
def namespace() -> str:
    return NAMESPACE


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sleeps() -> List[float]:
    """Collects the delays a backoff loop asked to sleep for, without sleeping."""
    return []


@pytest.fixture
def fast_backoff() -> Backoff:
    return Backoff(duration=1.0, factor=1.7, jitter=1.0, cap=120.0, steps=20)


@pytest.fixture
def make_lvset(namespace):
    def _make(name: str, storage_class: str, **spec) -> LocalVolumeSet:
        return LocalVolumeSet.model_validate(
            {
                "metadata": {"name": name, "namespace": namespace},
                "spec": {"storageClassName": storage_class, **spec},
            }
        )

    return _make


@pytest.fixture
def make_lv(namespace):
    def _make(name: str, storage_classes=(), **spec) -> LocalVolume:
        devices = [{"storageClassName": sc, "devicePaths": ["/dev/sdb"]} for sc in storage_classes]
        return LocalVolume.model_validate(
            {
                "metadata": {"name": name, "namespace": namespace},
                "spec": {"storageClassDevices": devices, **spec},
            }
        )

    return _make


@pytest.fixture
def make_daemonset(namespace):
    def _make(name: str, app: Optional[str] = None) -> DaemonSet:
        labels = {"app": app} if app else {}
        return DaemonSet(metadata=ObjectMeta(name=name, namespace=namespace, labels=labels))

    return _make


@pytest.fixture
def make_pod(namespace):
    def _make(name: str, app: str) -> Pod:
        return Pod(metadata=ObjectMeta(name=name, namespace=namespace, labels={"app": app}))

    return _make
