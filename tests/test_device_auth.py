import hashlib
import hmac

import pytest

from autojs_control.domain.common.exceptions import (
    InvalidSignatureError,
    StaleTimestampError,
    UnknownDeviceError,
)
from autojs_control.domain.devices import DeviceAuthService
from autojs_control.domain.heartbeat import HeartbeatRequest

from helpers import sign

CERTIFICATE = "c" * 64


@pytest.fixture
def auth(clock):
    return DeviceAuthService("server-secret", window=300, clock=clock)


def _now(clock) -> int:
    return int(clock().timestamp())


def test_signature_is_hmac_of_joined_fields_and_certificate():
    expected = hmac.new(
        CERTIFICATE.encode(), f"dev-1:1700000000:{CERTIFICATE}".encode(), hashlib.sha256
    ).hexdigest()
    assert DeviceAuthService.sign(CERTIFICATE, "dev-1", 1700000000) == expected


def test_verify_accepts_heartbeat_and_report_signatures(auth, clock):
    ts = _now(clock)
    auth.verify("dev-1", sign(CERTIFICATE, "dev-1", ts), ts, CERTIFICATE)
    auth.verify("dev-1", sign(CERTIFICATE, "dev-1", "INS-1", ts), ts, CERTIFICATE, "INS-1")


def test_flipped_signature_byte_is_rejected(auth, clock):
    ts = _now(clock)
    signature = sign(CERTIFICATE, "dev-1", ts)
    tampered = ("0" if signature[0] != "0" else "1") + signature[1:]
    with pytest.raises(InvalidSignatureError):
        auth.verify("dev-1", tampered, ts, CERTIFICATE)


def test_signature_for_other_instruction_is_rejected(auth, clock):
    ts = _now(clock)
    with pytest.raises(InvalidSignatureError):
        auth.verify("dev-1", sign(CERTIFICATE, "dev-1", "INS-1", ts), ts, CERTIFICATE, "INS-2")


@pytest.mark.parametrize("skew", [301, -301])
def test_timestamp_outside_window_is_stale(auth, clock, skew):
    ts = _now(clock) + skew
    with pytest.raises(StaleTimestampError):
        auth.verify("dev-1", sign(CERTIFICATE, "dev-1", ts), ts, CERTIFICATE)


@pytest.mark.parametrize("skew", [300, -300])
def test_timestamp_on_window_edge_is_accepted(auth, clock, skew):
    ts = _now(clock) + skew
    auth.verify("dev-1", sign(CERTIFICATE, "dev-1", ts), ts, CERTIFICATE)


def test_generate_certificate_depends_on_request_and_issue_time(auth):
    first = auth.generate_certificate("dev-1", "csr", issued_at=1700000000)
    assert first == auth.generate_certificate("dev-1", "csr", issued_at=1700000000)
    assert first != auth.generate_certificate("dev-1", "csr-2", issued_at=1700000000)
    assert first != auth.generate_certificate("dev-1", "csr", issued_at=1700000001)
    assert len(first) == 64


async def test_heartbeat_checks_timestamp_before_device_lookup(engine, seed, clock):
    ts = _now(clock) - 1000
    with pytest.raises(StaleTimestampError):
        await engine.heartbeat.authenticate("no-such-device", "sig", ts)


async def test_heartbeat_rejects_unknown_device(engine, seed, clock):
    ts = _now(clock)
    with pytest.raises(UnknownDeviceError):
        await engine.heartbeat.authenticate("no-such-device", "sig", ts)


async def test_registered_certificate_verifies_heartbeat(engine, seed, clock):
    ts = _now(clock)
    certificate = seed["certificates"]["dev-1"]
    device = await engine.heartbeat.authenticate("dev-1", sign(certificate, "dev-1", ts), ts)
    assert device.device_code == "dev-1"


async def test_rejected_heartbeat_leaves_liveness_untouched(engine, seed, clock):
    ts = _now(clock)
    with pytest.raises(InvalidSignatureError):
        await engine.heartbeat.accept(HeartbeatRequest(device_code="dev-1", signature="bad", timestamp=ts))
    assert not await engine.liveness.is_online("dev-1")
