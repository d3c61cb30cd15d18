"""IAM role policies restricting a key to object storage buckets."""

from __future__ import annotations

import re
from typing import Any

_BUCKET_LITERAL = re.compile(r"'((?:[^'\\]|\\.)*)'")


def build_sos_policy(buckets: list[str]) -> dict[str, Any]:
    """Build a role policy that only allows SOS access to ``buckets``.

    Every other service is denied by the default strategy. Within SOS,
    requests whose bucket parameter is not listed are denied.

    Args:
        buckets: Bucket names the key may access

    Returns:
        IAM policy document
    """
    quoted = ", ".join("'" + bucket.replace("'", "\\'") + "'" for bucket in buckets)
    return {
        "default-service-strategy": "deny",
        "services": {
            "sos": {
                "type": "rules",
                "rules": [
                    {
                        "action": "deny",
                        "expression": f"!(parameters.bucket in [{quoted}])",
                    },
                    {
                        "action": "allow",
                        "expression": "true",
                    },
                ],
            },
        },
    }


def buckets_from_policy(policy: dict[str, Any] | None) -> list[str]:
    """Extract the bucket scope from a policy built by build_sos_policy.

    Returns an empty list for policies that were not produced by this operator.
    """
    sos = ((policy or {}).get("services") or {}).get("sos") or {}
    for rule in sos.get("rules") or []:
        expression = rule.get("expression", "")
        if rule.get("action") == "deny" and "parameters.bucket in" in expression:
            return [literal.replace("\\'", "'") for literal in _BUCKET_LITERAL.findall(expression)]
    return []
