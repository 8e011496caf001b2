"""Deterministic document IDs.

Re-sending the same sample produces the same ID, so the store overwrites the
existing document instead of indexing a duplicate.
"""

from __future__ import annotations

import hashlib

from mdr.models.metric import Metric


def document_id(time_ns: int, name: str, series_hash: int) -> str:
    """SHA-256 hex digest of ``str(time_ns) + name + str(series_hash)``."""
    payload = f"{time_ns}{name}{series_hash}".encode()
    return hashlib.sha256(payload).hexdigest()


def compute_document_id(metric: Metric) -> str:
    return document_id(metric.time_ns, metric.name, metric.hash_id())
