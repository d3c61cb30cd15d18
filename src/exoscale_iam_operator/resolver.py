"""Resolution of the name used to correlate an IAMKey with its Exoscale key."""

from __future__ import annotations


def resolve_external_name(
    key_name_override: str | None,
    correlation_annotation: str | None,
    cluster_name: str,
) -> str:
    """Return the external key name.

    Precedence:
        1. ``spec.forProvider.keyName``
        2. the ``crossplane.io/external-name`` annotation
        3. ``metadata.name``

    The result is written back to the annotation at first create, so later
    resolutions keep returning the name the key was created with unless an
    explicit override is set.
    """
    if key_name_override:
        return key_name_override
    if correlation_annotation:
        return correlation_annotation
    return cluster_name
