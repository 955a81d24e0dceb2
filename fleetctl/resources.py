"""Desired state for the diskmaker fleet and the mutate functions that apply it."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import yaml

from .k8s_client import ObjectStore
from .schemas import (
    ConfigMap,
    DaemonSet,
    DesiredState,
    LocalVolume,
    LocalVolumeSet,
    NodeSelector,
    NodeSelectorTerm,
    OwnerReference,
    Toleration,
)

APP_LABEL_KEY = "app"
PROVISIONER_CONFIG_NAME = "local-provisioner"
DISKMAKER_NAME = "diskmaker-manager"
DATA_HASH_ANNOTATION_KEY = "local.storage.openshift.io/configMapDataHash"

SERVICE_ACCOUNT_NAME = "local-storage-admin"
LOCAL_DISKS_ROOT = "/mnt/local-storage"
OWNER_NAME_LABEL = "storage.openshift.com/owner-name"
OWNER_NAMESPACE_LABEL = "storage.openshift.com/owner-namespace"
OWNER_KIND_LABEL = "storage.openshift.com/owner-kind"

Record = Union[LocalVolumeSet, LocalVolume]


# --------------------------------------------------------------------- #
# Aggregation                                                           #
# --------------------------------------------------------------------- #

def aggregate_desired_state(store: ObjectStore, namespace: str) -> DesiredState:
    """Collect every live LocalVolumeSet and LocalVolume in *namespace* into one DesiredState."""
    lvsets = _live(store.list("LocalVolumeSet", namespace))
    lvs = _live(store.list("LocalVolume", namespace))
    records: List[Record] = [*lvsets, *lvs]

    tolerations: List[Toleration] = []
    for record in records:
        for toleration in record.spec.tolerations:
            if toleration not in tolerations:
                tolerations.append(toleration)

    owner_refs = [
        OwnerReference(
            api_version=record.api_version,
            kind=record.kind,
            name=record.metadata.name,
            uid=record.metadata.uid or "",
        )
        for record in records
    ]

    return DesiredState(
        local_volume_sets=lvsets,
        local_volumes=lvs,
        tolerations=tolerations,
        owner_references=owner_refs,
        node_selector=_merge_node_selectors(records),
    )


def _live(objs: Sequence[Any]) -> List[Any]:
    # stable order keeps the rendered config identical between passes
    return sorted(
        (o for o in objs if not o.metadata.deletion_timestamp),
        key=lambda o: o.metadata.name,
    )


def _merge_node_selectors(records: Sequence[Record]) -> Optional[NodeSelector]:
    """OR together every record's node selector terms.

    A record without a node selector wants every node, which makes the union
    unrestricted too.
    """
    terms: List[NodeSelectorTerm] = []
    for record in records:
        selector = record.spec.node_selector
        if selector is None or not selector.node_selector_terms:
            return None
        for term in selector.node_selector_terms:
            if term not in terms:
                terms.append(term)
    if not terms:
        return None
    return NodeSelector(node_selector_terms=terms)


# --------------------------------------------------------------------- #
# Provisioner ConfigMap                                                 #
# --------------------------------------------------------------------- #

def provisioner_config_data(desired: DesiredState) -> Dict[str, str]:
    storage_classes: Dict[str, Dict[str, str]] = {}

    def add(name: str, volume_mode: str, fs_type: Optional[str]) -> None:
        if name in storage_classes:
            return
        entry = {
            "hostDir": f"{LOCAL_DISKS_ROOT}/{name}",
            "mountDir": f"{LOCAL_DISKS_ROOT}/{name}",
            "volumeMode": volume_mode,
        }
        if fs_type:
            entry["fsType"] = fs_type
        storage_classes[name] = entry

    for lvset in desired.local_volume_sets:
        add(lvset.spec.storage_class_name, lvset.spec.volume_mode, lvset.spec.fs_type)
    for lv in desired.local_volumes:
        for devices in lv.spec.storage_class_devices:
            add(devices.storage_class_name, devices.volume_mode, devices.fs_type)

    labels_for_pv = {
        "labelsForPV": [OWNER_NAME_LABEL, OWNER_NAMESPACE_LABEL, OWNER_KIND_LABEL],
    }
    return {
        "storageClassMap": yaml.safe_dump(storage_classes, default_flow_style=False, sort_keys=True),
        "labelsForPV": yaml.safe_dump(labels_for_pv, default_flow_style=False),
        "useNodeNameOnly": "true",
        "minResyncPeriod": "5m0s",
    }


def config_map_mutate_fn(desired: DesiredState) -> Callable[[ConfigMap], None]:
    data = provisioner_config_data(desired)
    owner_refs = [ref.model_copy() for ref in desired.owner_references]

    def mutate(cm: ConfigMap) -> None:
        cm.metadata.labels[APP_LABEL_KEY] = PROVISIONER_CONFIG_NAME
        cm.metadata.owner_references = [ref.model_copy() for ref in owner_refs]
        cm.data = dict(data)

    return mutate


# --------------------------------------------------------------------- #
# diskmaker-manager DaemonSet                                           #
# --------------------------------------------------------------------- #

def _merge_named(items: List[Dict[str, Any]], desired: Dict[str, Any]) -> None:
    """Update the entry with desired["name"] in place, or append it.

    Keys we don't set are left alone so values the apiserver defaulted
    don't show up as a diff on the next pass.
    """
    for item in items:
        if item.get("name") == desired["name"]:
            item.update(desired)
            return
    items.append(dict(desired))


def _diskmaker_container(namespace: str, image: str) -> Dict[str, Any]:
    return {
        "name": DISKMAKER_NAME,
        "image": image,
        "args": ["lv-manager"],
        "securityContext": {"privileged": True},
        "env": [
            {"name": "WATCH_NAMESPACE", "value": namespace},
            {
                "name": "MY_NODE_NAME",
                "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "spec.nodeName"}},
            },
        ],
        "volumeMounts": [
            {"name": "provisioner-config", "mountPath": "/etc/provisioner/config", "readOnly": True},
            {"name": "local-disks", "mountPath": LOCAL_DISKS_ROOT, "mountPropagation": "HostToContainer"},
            {"name": "device-dir", "mountPath": "/dev", "mountPropagation": "HostToContainer"},
            {"name": "run-udev", "mountPath": "/run/udev", "mountPropagation": "HostToContainer"},
        ],
    }


def _diskmaker_volumes() -> List[Dict[str, Any]]:
    return [
        {"name": "provisioner-config", "configMap": {"name": PROVISIONER_CONFIG_NAME, "defaultMode": 420}},
        {"name": "local-disks", "hostPath": {"path": LOCAL_DISKS_ROOT, "type": ""}},
        {"name": "device-dir", "hostPath": {"path": "/dev", "type": "Directory"}},
        {"name": "run-udev", "hostPath": {"path": "/run/udev", "type": ""}},
    ]


def diskmaker_mutate_fn(
    namespace: str,
    tolerations: Sequence[Toleration],
    owner_refs: Sequence[OwnerReference],
    node_selector: Optional[NodeSelector],
    config_hash: str,
    image: str,
) -> Callable[[DaemonSet], None]:
    """Build the mutate function for the diskmaker-manager daemonset.

    The config hash goes on the daemonset and on its pod template; the
    template annotation is what makes the daemonset controller roll the pods
    when the provisioner config changes.
    """
    toleration_list = [t.to_api() for t in tolerations]
    owner_list = [ref.model_copy() for ref in owner_refs]
    affinity = None
    if node_selector is not None:
        affinity = {
            "nodeAffinity": {
                "requiredDuringSchedulingIgnoredDuringExecution": node_selector.to_api(),
            }
        }

    def mutate(ds: DaemonSet) -> None:
        ds.metadata.labels[APP_LABEL_KEY] = DISKMAKER_NAME
        ds.metadata.annotations[DATA_HASH_ANNOTATION_KEY] = config_hash
        ds.metadata.owner_references = [ref.model_copy() for ref in owner_list]

        spec = ds.spec
        spec["selector"] = {"matchLabels": {APP_LABEL_KEY: DISKMAKER_NAME}}
        template = spec.setdefault("template", {})
        template_meta = template.setdefault("metadata", {})
        template_meta.setdefault("labels", {})[APP_LABEL_KEY] = DISKMAKER_NAME
        template_meta.setdefault("annotations", {})[DATA_HASH_ANNOTATION_KEY] = config_hash

        pod = template.setdefault("spec", {})
        pod["serviceAccountName"] = SERVICE_ACCOUNT_NAME
        pod["tolerations"] = [dict(t) for t in toleration_list]
        if affinity is None:
            pod.pop("affinity", None)
        else:
            pod["affinity"] = copy.deepcopy(affinity)

        _merge_named(pod.setdefault("containers", []), _diskmaker_container(namespace, image))
        volumes = pod.setdefault("volumes", [])
        for volume in _diskmaker_volumes():
            _merge_named(volumes, volume)

    return mutate
