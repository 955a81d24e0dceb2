import os
from dataclasses import dataclass

@dataclass
class Settings:
    k8s_api_base_url: str = os.getenv("K8S_API_BASE_URL", "")
    k8s_namespace: str = os.getenv("K8S_NAMESPACE", "openshift-local-storage")
    verify_ssl: bool = os.getenv("K8S_VERIFY_SSL", "false").lower() == "true"
    k8s_bearer_token: str | None = os.getenv("K8S_BEARER_TOKEN") or None
    request_timeout: float = float(os.getenv("K8S_REQUEST_TIMEOUT", "30"))
    # list-then-filter when the apiserver (or a proxy in front of it) drops set-based selectors
    server_side_selectors: bool = os.getenv("K8S_SERVER_SIDE_SELECTORS", "true").lower() == "true"

    diskmaker_image: str = os.getenv("DISKMAKER_IMAGE", "quay.io/openshift/origin-local-storage-diskmaker:latest")

    cleanup_backoff_initial: float = float(os.getenv("CLEANUP_BACKOFF_INITIAL", "1.0"))
    cleanup_backoff_factor: float = float(os.getenv("CLEANUP_BACKOFF_FACTOR", "1.7"))
    cleanup_backoff_jitter: float = float(os.getenv("CLEANUP_BACKOFF_JITTER", "1.0"))
    cleanup_backoff_cap: float = float(os.getenv("CLEANUP_BACKOFF_CAP", "120"))
    cleanup_backoff_steps: int = int(os.getenv("CLEANUP_BACKOFF_STEPS", "20"))

settings = Settings()
