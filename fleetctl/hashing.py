"""Content fingerprint for ConfigMap payloads."""

from __future__ import annotations

import hashlib
import json
from typing import Mapping


def data_hash(data: Mapping[str, str]) -> str:
    """Return a hex sha256 of *data*, independent of key insertion order.

    Keys are sorted and the mapping is serialised as compact JSON, so a key
    or value containing separator characters cannot collide with a
    different payload.
    """
    canonical = json.dumps(dict(data), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
