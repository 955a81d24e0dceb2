"""Minimal Kubernetes REST client for the objects the fleet reconciler touches."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type

import requests

from .config import settings
from .errors import (
    ConflictError,
    GoneError,
    NotFoundError,
    StoreError,
    TransientStoreError,
)
from .schemas import (
    ConfigMap,
    DaemonSet,
    KubeObject,
    LocalVolume,
    LocalVolumeSet,
    Pod,
)
from .selectors import LabelSelector

log = logging.getLogger(__name__)

# pass as namespace to list across every namespace
ALL_NAMESPACES = "*"

# kind -> (model, collection path)
RESOURCES: Dict[str, Tuple[Type[KubeObject], str]] = {
    "ConfigMap": (ConfigMap, "/api/v1/namespaces/{namespace}/configmaps"),
    "Pod": (Pod, "/api/v1/namespaces/{namespace}/pods"),
    "DaemonSet": (DaemonSet, "/apis/apps/v1/namespaces/{namespace}/daemonsets"),
    "LocalVolume": (
        LocalVolume,
        "/apis/local.storage.openshift.io/v1/namespaces/{namespace}/localvolumes",
    ),
    "LocalVolumeSet": (
        LocalVolumeSet,
        "/apis/local.storage.openshift.io/v1alpha1/namespaces/{namespace}/localvolumesets",
    ),
}

_STATUS_ERRORS: Dict[int, Type[StoreError]] = {
    404: NotFoundError,
    409: ConflictError,
    410: GoneError,
    429: TransientStoreError,
}


class ObjectStore(Protocol):
    """What the reconciler needs from the cluster. K8sClient is the real one."""

    def list(self, kind: str, namespace: str | None = None, selector: Optional[LabelSelector] = None) -> List[KubeObject]: ...

    def get(self, kind: str, namespace: str | None, name: str) -> KubeObject: ...

    def create(self, obj: KubeObject) -> KubeObject: ...

    def update(self, obj: KubeObject) -> KubeObject: ...

    def delete(self, obj: KubeObject) -> None: ...


def _resource(kind: str) -> Tuple[Type[KubeObject], str]:
    try:
        return RESOURCES[kind]
    except KeyError:
        raise ValueError(f"Unsupported kind: {kind}") from None


class K8sClient:
    def __init__(
        self,
        base_url: str | None = None,
        namespace: str | None = None,
        server_side_selectors: bool | None = None,
    ):
        if not base_url:
            base_url = settings.k8s_api_base_url
        if not base_url:
            raise ValueError("K8S_API_BASE_URL is not set. Configure it in env.")

        self.base_url = base_url.rstrip("/")
        self.namespace = namespace or settings.k8s_namespace
        self.verify_ssl = settings.verify_ssl
        self.bearer_token = settings.k8s_bearer_token
        self.timeout = settings.request_timeout
        if server_side_selectors is None:
            server_side_selectors = settings.server_side_selectors
        self.server_side_selectors = server_side_selectors

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        json_body: Dict[str, Any] | None = None,
        params: Dict[str, str] | None = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return requests.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=json_body,
                params=params,
                verify=self.verify_ssl,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientStoreError(f"{method} {path} failed: {e}") from e

    def _decode(self, resp: requests.Response, what: str) -> Dict[str, Any]:
        try:
            raw = resp.json()
        except json.JSONDecodeError:
            raw = {"raw_text": resp.text}
        if not isinstance(raw, dict):
            raw = {"raw_text": resp.text}

        if resp.status_code < 400:
            return raw

        status = resp.status_code
        error_cls = _STATUS_ERRORS.get(status)
        if error_cls is None:
            error_cls = TransientStoreError if status >= 500 else StoreError
        message = raw.get("message") or raw.get("raw_text") or ""
        raise error_cls(
            f"{what}: K8s API error {status}: {message}",
            status_code=status,
            reason=raw.get("reason"),
        )

    def _path(self, kind: str, namespace: str | None, name: str | None = None) -> str:
        _, collection = _resource(kind)
        if namespace == ALL_NAMESPACES:
            path = collection.replace("/namespaces/{namespace}", "")
        else:
            path = collection.format(namespace=namespace or self.namespace)
        if name:
            path = f"{path}/{name}"
        return path

    # ------------------------------------------------------------------ #
    # Object store operations                                            #
    # ------------------------------------------------------------------ #

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        selector: Optional[LabelSelector] = None,
    ) -> List[KubeObject]:
        model, _ = _resource(kind)
        params = None
        filter_locally = selector is not None and not selector.is_empty()
        if filter_locally and self.server_side_selectors:
            params = {"labelSelector": str(selector)}
            filter_locally = False

        resp = self._request("GET", self._path(kind, namespace), params=params)
        data = self._decode(resp, f"list {kind}")
        items = [model.model_validate(item) for item in data.get("items", []) or []]
        if filter_locally:
            items = [obj for obj in items if selector.matches(obj.metadata.labels)]
        return items

    def get(self, kind: str, namespace: str | None, name: str) -> KubeObject:
        model, _ = _resource(kind)
        resp = self._request("GET", self._path(kind, namespace, name))
        return model.model_validate(self._decode(resp, f"get {kind} {name!r}"))

    def create(self, obj: KubeObject) -> KubeObject:
        resp = self._request(
            "POST",
            self._path(obj.kind, obj.metadata.namespace),
            json_body=obj.to_api(),
        )
        data = self._decode(resp, f"create {obj.kind} {obj.metadata.name!r}")
        return type(obj).model_validate(data)

    def update(self, obj: KubeObject) -> KubeObject:
        # resourceVersion travels in the body, so a stale read surfaces as ConflictError
        resp = self._request(
            "PUT",
            self._path(obj.kind, obj.metadata.namespace, obj.metadata.name),
            json_body=obj.to_api(),
        )
        data = self._decode(resp, f"update {obj.kind} {obj.metadata.name!r}")
        return type(obj).model_validate(data)

    def delete(self, obj: KubeObject) -> None:
        resp = self._request(
            "DELETE",
            self._path(obj.kind, obj.metadata.namespace, obj.metadata.name),
            json_body={
                "kind": "DeleteOptions",
                "apiVersion": "v1",
                "propagationPolicy": "Background",
            },
        )
        self._decode(resp, f"delete {obj.kind} {obj.metadata.name!r}")
        log.debug("deleted %s %s/%s", obj.kind, obj.metadata.namespace, obj.metadata.name)
