from __future__ import annotations

import copy
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _KubeModel(BaseModel):
    # extra="allow" keeps server-populated fields we don't model so updates send them back untouched
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --------------------------------------------------------------------- #
# Object metadata                                                       #
# --------------------------------------------------------------------- #

class OwnerReference(_KubeModel):
    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: Optional[bool] = None
    block_owner_deletion: Optional[bool] = Field(default=None, alias="blockOwnerDeletion")


class ObjectMeta(_KubeModel):
    name: str = ""
    namespace: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    owner_references: List[OwnerReference] = Field(default_factory=list, alias="ownerReferences")
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    creation_timestamp: Optional[str] = Field(default=None, alias="creationTimestamp")
    deletion_timestamp: Optional[str] = Field(default=None, alias="deletionTimestamp")


class KubeObject(_KubeModel):
    """A named, namespaced API object.

    ``managed_fields`` lists the top-level fields (besides labels, annotations
    and owner references) that the reconciler owns; only those take part in
    change detection.
    """

    managed_fields: ClassVar[Tuple[str, ...]] = ()

    api_version: str = Field(default="v1", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    def managed_view(self) -> Dict[str, Any]:
        meta = self.metadata
        view: Dict[str, Any] = {
            "labels": dict(meta.labels),
            "annotations": dict(meta.annotations),
            "ownerReferences": [ref.to_api() for ref in meta.owner_references],
        }
        for field in self.managed_fields:
            value = getattr(self, field)
            if isinstance(value, BaseModel):
                view[field] = value.model_dump(by_alias=True, exclude_none=True)
            else:
                view[field] = copy.deepcopy(value)
        return view


# --------------------------------------------------------------------- #
# Scheduling primitives                                                 #
# --------------------------------------------------------------------- #

class Toleration(_KubeModel):
    key: Optional[str] = None
    operator: Optional[str] = None
    value: Optional[str] = None
    effect: Optional[str] = None
    toleration_seconds: Optional[int] = Field(default=None, alias="tolerationSeconds")


class NodeSelectorRequirement(_KubeModel):
    key: str
    operator: str
    values: Optional[List[str]] = None

    @field_validator("values")
    @classmethod
    def _empty_values_unset(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        # Exists/DoesNotExist carry no values and the apiserver drops an empty list
        return v or None


class NodeSelectorTerm(_KubeModel):
    match_expressions: Optional[List[NodeSelectorRequirement]] = Field(default=None, alias="matchExpressions")
    match_fields: Optional[List[NodeSelectorRequirement]] = Field(default=None, alias="matchFields")


class NodeSelector(_KubeModel):
    node_selector_terms: List[NodeSelectorTerm] = Field(default_factory=list, alias="nodeSelectorTerms")


# --------------------------------------------------------------------- #
# Core kinds                                                            #
# --------------------------------------------------------------------- #

class ConfigMap(KubeObject):
    managed_fields: ClassVar[Tuple[str, ...]] = ("data",)

    api_version: str = Field(default="v1", alias="apiVersion")
    kind: str = "ConfigMap"
    data: Dict[str, str] = Field(default_factory=dict)


class DaemonSet(KubeObject):
    managed_fields: ClassVar[Tuple[str, ...]] = ("spec",)

    api_version: str = Field(default="apps/v1", alias="apiVersion")
    kind: str = "DaemonSet"
    spec: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[Dict[str, Any]] = None


class Pod(KubeObject):
    api_version: str = Field(default="v1", alias="apiVersion")
    kind: str = "Pod"
    spec: Optional[Dict[str, Any]] = None
    status: Optional[Dict[str, Any]] = None


# --------------------------------------------------------------------- #
# Local storage custom resources                                        #
# --------------------------------------------------------------------- #

class StorageClassDevice(_KubeModel):
    storage_class_name: str = Field(alias="storageClassName")
    volume_mode: str = Field(default="Filesystem", alias="volumeMode")
    fs_type: Optional[str] = Field(default=None, alias="fsType")
    device_paths: List[str] = Field(default_factory=list, alias="devicePaths")


class LocalVolumeSpec(_KubeModel):
    node_selector: Optional[NodeSelector] = Field(default=None, alias="nodeSelector")
    tolerations: List[Toleration] = Field(default_factory=list)
    storage_class_devices: List[StorageClassDevice] = Field(default_factory=list, alias="storageClassDevices")


class LocalVolume(KubeObject):
    api_version: str = Field(default="local.storage.openshift.io/v1", alias="apiVersion")
    kind: str = "LocalVolume"
    spec: LocalVolumeSpec = Field(default_factory=LocalVolumeSpec)


class LocalVolumeSetSpec(_KubeModel):
    storage_class_name: str = Field(alias="storageClassName")
    volume_mode: str = Field(default="Block", alias="volumeMode")
    fs_type: Optional[str] = Field(default=None, alias="fsType")
    node_selector: Optional[NodeSelector] = Field(default=None, alias="nodeSelector")
    tolerations: List[Toleration] = Field(default_factory=list)


class LocalVolumeSet(KubeObject):
    api_version: str = Field(default="local.storage.openshift.io/v1alpha1", alias="apiVersion")
    kind: str = "LocalVolumeSet"
    spec: LocalVolumeSetSpec


# --------------------------------------------------------------------- #
# Reconciliation state                                                  #
# --------------------------------------------------------------------- #

class DesiredState(BaseModel):
    """Everything one pass needs, aggregated from the namespace's LocalVolumeSets and LocalVolumes."""

    model_config = ConfigDict(frozen=True)

    local_volume_sets: List[LocalVolumeSet] = Field(default_factory=list)
    local_volumes: List[LocalVolume] = Field(default_factory=list)
    tolerations: List[Toleration] = Field(default_factory=list)
    owner_references: List[OwnerReference] = Field(default_factory=list)
    # None means "every node"
    node_selector: Optional[NodeSelector] = None

    @property
    def is_empty(self) -> bool:
        return not self.local_volume_sets and not self.local_volumes


class OperationResult(str, Enum):
    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"

    @property
    def changed(self) -> bool:
        return self is not OperationResult.UNCHANGED


class CleanupState(str, Enum):
    PENDING = "pending"
    DELETING = "deleting"
    AWAITING_DRAIN = "awaiting_drain"
    DONE = "done"


class ReconcileReport(BaseModel):
    namespace: str
    cleanup_state: CleanupState
    skipped: bool = False
    config_result: Optional[OperationResult] = None
    daemonset_result: Optional[OperationResult] = None
    config_hash: Optional[str] = None


class FleetSnapshot(BaseModel):
    namespace: str
    cleanup_state: CleanupState
    config_hash: Optional[str] = None
    daemonset_hash: Optional[str] = None
    in_sync: bool = False
