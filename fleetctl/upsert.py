"""Create-or-update for objects the reconciler owns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from .errors import NotFoundError
from .k8s_client import ObjectStore
from .schemas import KubeObject, ObjectMeta, OperationResult

log = logging.getLogger(__name__)

T = TypeVar("T", bound=KubeObject)


@dataclass(frozen=True)
class ObjectKey:
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


def create_or_update(
    store: ObjectStore,
    model: Type[T],
    key: ObjectKey,
    mutate: Callable[[T], None],
) -> Tuple[T, OperationResult]:
    """Fetch *key* (or start from an empty object), apply *mutate*, write if it changed anything.

    *mutate* edits the object in place and must only derive values from its
    own inputs. Only the object's managed fields are compared, so fields the
    server fills in (uid, resourceVersion, status, defaulted spec values)
    never trigger a write on their own. An absent object is always created.

    Fetch errors other than not-found and write errors (including conflicts)
    propagate; callers retry on their next pass.
    """
    try:
        obj = store.get(key.kind, key.namespace, key.name)
        exists = True
    except NotFoundError:
        obj = model(metadata=ObjectMeta(name=key.name, namespace=key.namespace))
        exists = False

    before = obj.managed_view()
    mutate(obj)

    if obj.metadata.name != key.name or obj.metadata.namespace != key.namespace:
        raise ValueError(f"mutate function changed the identity of {key}")

    if not exists:
        log.debug("creating %s", key)
        return store.create(obj), OperationResult.CREATED

    if obj.managed_view() == before:
        return obj, OperationResult.UNCHANGED

    log.debug("updating %s", key)
    return store.update(obj), OperationResult.UPDATED
