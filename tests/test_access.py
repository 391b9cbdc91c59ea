"""
Pytest tests for the access guard: capability checks, bearer tokens and
per-principal admission control (fake clock, no sleeping).
"""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from contribution_review.access import (
    Capability,
    InMemoryAdmissionControl,
    Principal,
    Role,
    check_capability,
    create_access_token,
    decode_principal,
    principal_from_authorization,
    require_capability,
)
from contribution_review.core.exceptions import (
    AuthenticationError,
    ForbiddenError,
    RateLimitedError,
)

SECRET = "unit-test-secret"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# --- Capabilities ---


def test_role_capabilities_are_nested():
    user = Principal("u", Role.USER)
    moderator = Principal("m", Role.MODERATOR)
    admin = Principal("a", Role.ADMIN)
    assert user.capabilities < moderator.capabilities < admin.capabilities


def test_user_cannot_review_moderator_can():
    assert not check_capability(Principal("u", Role.USER), [Capability.REVIEW_CONTRIBUTIONS])
    assert check_capability(Principal("m", Role.MODERATOR), [Capability.REVIEW_CONTRIBUTIONS])


def test_owner_satisfies_read_all_with_read_own():
    owner = Principal("u1", Role.USER)
    assert check_capability(owner, [Capability.READ_ALL_CONTRIBUTIONS], owner_id="u1")
    assert not check_capability(owner, [Capability.READ_ALL_CONTRIBUTIONS], owner_id="u2")
    assert not check_capability(owner, [Capability.READ_ALL_CONTRIBUTIONS])


def test_ownership_does_not_grant_review():
    owner = Principal("u1", Role.USER)
    assert not check_capability(owner, [Capability.REVIEW_CONTRIBUTIONS], owner_id="u1")


def test_require_capability_raises_forbidden():
    with pytest.raises(ForbiddenError):
        require_capability(Principal("m", Role.MODERATOR), [Capability.MANAGE_USERS])
    require_capability(Principal("a", Role.ADMIN), [Capability.MANAGE_USERS])


# --- Tokens ---


def test_token_round_trip():
    token = create_access_token("user-9", Role.MODERATOR, secret=SECRET)
    principal = decode_principal(token, secret=SECRET)
    assert principal == Principal("user-9", Role.MODERATOR)


def test_expired_token_rejected():
    token = create_access_token("u", "user", secret=SECRET, expires_in=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError, match="expired"):
        decode_principal(token, secret=SECRET)


def test_wrong_secret_rejected():
    token = create_access_token("u", "user", secret="other")
    with pytest.raises(AuthenticationError):
        decode_principal(token, secret=SECRET)


def test_unknown_role_and_missing_subject_rejected():
    bad_role = jwt.encode({"sub": "u", "role": "superuser"}, SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError, match="role"):
        decode_principal(bad_role, secret=SECRET)
    no_sub = jwt.encode({"role": "user"}, SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_principal(no_sub, secret=SECRET)


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "Bearer not-a-jwt"])
def test_bad_authorization_header(header):
    with pytest.raises(AuthenticationError):
        principal_from_authorization(header, secret=SECRET)


def test_bearer_header_parsed():
    token = create_access_token("u1", "admin", secret=SECRET)
    principal = principal_from_authorization(f"Bearer {token}", secret=SECRET)
    assert principal.role is Role.ADMIN


# --- Admission control ---


@pytest.mark.parametrize("window_ms,window_sec", [(60_000, 60), (1000, 1)])
def test_admission_denies_over_limit_until_window_passes(window_ms, window_sec):
    clock = FakeClock()
    control = InMemoryAdmissionControl(max_requests=3, window_ms=window_ms, clock=clock)

    decisions = [control.admit("p1").allowed for _ in range(4)]
    assert decisions == [True, True, True, False]
    denied = control.admit("p1")
    assert denied.retry_after_sec == window_sec

    clock.advance(window_sec + 0.5)
    assert control.admit("p1").allowed is True


def test_admission_is_per_principal():
    control = InMemoryAdmissionControl(max_requests=1, window_ms=1000, clock=FakeClock())
    assert control.admit("a").allowed
    assert not control.admit("a").allowed
    assert control.admit("b").allowed


def test_denied_requests_do_not_extend_window():
    clock = FakeClock()
    control = InMemoryAdmissionControl(max_requests=2, window_ms=10_000, clock=clock)
    control.admit("p")
    clock.advance(5)
    control.admit("p")
    clock.advance(4)
    assert not control.admit("p").allowed
    clock.advance(1.5)
    # first request has left the window; the denied one was never counted
    assert control.admit("p").allowed


def test_enforce_raises_with_retry_after():
    control = InMemoryAdmissionControl(max_requests=1, window_ms=900_000, clock=FakeClock())
    control.enforce("p")
    with pytest.raises(RateLimitedError) as exc_info:
        control.enforce("p")
    assert exc_info.value.retry_after_sec == 900


def test_reset_forgets_state():
    control = InMemoryAdmissionControl(max_requests=1, window_ms=1000, clock=FakeClock())
    control.admit("p")
    control.reset("p")
    assert control.admit("p").allowed


def test_invalid_limits_rejected():
    with pytest.raises(ValueError):
        InMemoryAdmissionControl(max_requests=0)
    with pytest.raises(ValueError):
        InMemoryAdmissionControl(window_ms=0)
