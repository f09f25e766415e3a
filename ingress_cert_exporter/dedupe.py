"""
Deduplication of probe outcomes.
"""

import hashlib
import json
from typing import Iterable, List

from ingress_cert_exporter.models import ProbeOutcome


def fingerprint(outcome: ProbeOutcome) -> str:
    """
    Structural fingerprint of an outcome.

    Built from every field with sorted keys, so field order never matters.
    """
    key_data = json.dumps(outcome.to_dict(), sort_keys=True).encode("utf-8")
    return hashlib.sha256(key_data).hexdigest()


def dedupe(outcomes: Iterable[ProbeOutcome]) -> List[ProbeOutcome]:
    """
    Drop structurally identical outcomes, keeping the first of each.

    Args:
        outcomes: Outcomes of one collection pass

    Returns:
        Unique outcomes in first-seen order
    """
    seen = set()
    unique = []
    for outcome in outcomes:
        key = fingerprint(outcome)
        if key in seen:
            continue
        seen.add(key)
        unique.append(outcome)
    return unique
