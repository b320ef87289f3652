"""Edge gate domain enums.

Per-request state machine:

    UNCHECKED -> DENIED_NO_TOKEN
              -> DENIED_BAD_SHAPE
              -> DENIED_INVALID   (not found, inactive, expired, IP mismatch)
              -> ALLOWED

All DENIED_* states are terminal and go through the audit log before the
response is sent.
"""

from enum import StrEnum


class GateDecision(StrEnum):
    UNCHECKED = "unchecked"
    DENIED_NO_TOKEN = "denied_no_token"
    DENIED_BAD_SHAPE = "denied_bad_shape"
    DENIED_INVALID = "denied_invalid"
    ALLOWED = "allowed"

    @property
    def denied(self) -> bool:
        return self.value.startswith("denied_")


class RouteClass(StrEnum):
    """Protected route classes (decide the deny response shape)."""

    PAGE = "page"  # Browser-facing: redirect
    API = "api"  # JSON: 401
    PUBLIC = "public"  # Not gated
