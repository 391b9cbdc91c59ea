"""
Access guard: bearer token principals, the capability check, and
per-principal admission control in front of authenticated endpoints.
"""

from contribution_review.access.admission import (
    AdmissionControl,
    AdmissionDecision,
    InMemoryAdmissionControl,
)
from contribution_review.access.auth import (
    create_access_token,
    decode_principal,
    principal_from_authorization,
)
from contribution_review.access.capabilities import (
    Capability,
    Principal,
    Role,
    check_capability,
    require_capability,
)

__all__ = [
    "AdmissionControl",
    "AdmissionDecision",
    "Capability",
    "InMemoryAdmissionControl",
    "Principal",
    "Role",
    "check_capability",
    "create_access_token",
    "decode_principal",
    "principal_from_authorization",
    "require_capability",
]
