"""Wire format of the packets exchanged between the two boards."""

from __future__ import annotations

import struct

from .types import (
    ControllerState,
    Decision,
    Direction,
    GlobalState,
    LedMode,
    PartialStateB1,
    PartialStateB2,
    SystemMode,
)

SOF = 0xAA
EOF = 0x55

CMD_PARTIAL_STATE_B1 = 0x20
CMD_PARTIAL_STATE_B2 = 0x21
CMD_DECISION = 0x30

PACKET_B1_SIZE = 32
PACKET_B2_SIZE = 30
DECISION_PACKET_SIZE = 15

CRC_POLY = 0x1021
CRC_INIT = 0xFFFF

_B1_PAYLOAD_LEN = 27
_B2_PAYLOAD_LEN = 25
_DECISION_PAYLOAD_LEN = 6
_DECISION_B2_LEN = 11

_B1_LAYOUT = struct.Struct("<BBBB4fBBI5BB")
_B2_PAYLOAD = struct.Struct("<hHH7BHHHB5B")


class ProtocolError(ValueError):
    """Raised when a received packet cannot be accepted."""


def crc16(data: bytes) -> int:
    """CRC-16 with polynomial 0x1021 and initial value 0xFFFF."""
    crc = CRC_INIT
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC_POLY) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def serialize_partial_state_b1(state: PartialStateB1, sequence: int) -> bytes:
    """Encode board 1's sensor state as a 32-byte packet."""
    return _B1_LAYOUT.pack(
        SOF,
        sequence & 0xFF,
        CMD_PARTIAL_STATE_B1,
        _B1_PAYLOAD_LEN,
        state.vel_fl,
        state.vel_fr,
        state.vel_rl,
        state.vel_rr,
        state.battery_level & 0xFF,
        state.temperature & 0xFF,
        state.photoresistor & 0xFFFFFFFF,
        state.encoder_status & 0xFF,
        state.battery_status & 0xFF,
        state.temp_status & 0xFF,
        state.emergency & 0xFF,
        state.degraded & 0xFF,
        EOF,
    )


def serialize_decision(decision: Decision, sequence: int) -> bytes:
    """Encode a decision as a 15-byte, zero-padded packet."""
    setpoint = int(decision.setpoint) & 0xFFFF
    packet = bytes(
        [
            SOF,
            sequence & 0xFF,
            CMD_DECISION,
            _DECISION_PAYLOAD_LEN,
            setpoint & 0xFF,
            setpoint >> 8,
            int(decision.direction) & 0xFF,
            int(decision.led) & 0xFF,
            int(decision.decision_board) & 0xFF,
            int(decision.system_mode) & 0xFF,
            EOF,
        ]
    )
    return packet.ljust(DECISION_PACKET_SIZE, b"\x00")


def _locate(data: bytes, packet_len: int) -> bytes:
    if len(data) < packet_len:
        raise ProtocolError(f"need at least {packet_len} bytes, got {len(data)}")
    limit = len(data) - packet_len + 1
    start = data.find(bytes([SOF]), 0, limit)
    if start < 0:
        raise ProtocolError("start-of-frame byte not found")
    return data[start : start + packet_len]


def parse_partial_state_b2(data: bytes) -> tuple[int, PartialStateB2]:
    """Decode board 2's state packet; return (sequence, state)."""
    packet = _locate(bytes(data), PACKET_B2_SIZE)
    seq, cmd, length, eof = packet[1], packet[2], packet[3], packet[29]
    if eof != EOF:
        raise ProtocolError("bad end-of-frame byte")
    if cmd != CMD_PARTIAL_STATE_B2:
        raise ProtocolError(f"unexpected command 0x{cmd:02X}")
    if length != _B2_PAYLOAD_LEN:
        raise ProtocolError(f"unexpected payload length {length}")
    (
        ry, l2, r2, cross, circle, square, triangle, l1, r1, battery,
        dist_left, dist_center, dist_right, angle,
        controller_status, sonar_status, mpu_status, degraded, emergency,
    ) = _B2_PAYLOAD.unpack_from(packet, 4)
    controller = ControllerState(
        ry=ry, l2=l2, r2=r2, cross=cross, circle=circle, square=square,
        triangle=triangle, l1=l1, r1=r1, battery=battery,
    )
    state = PartialStateB2(
        controller=controller,
        dist_left=dist_left,
        dist_center=dist_center,
        dist_right=dist_right,
        angle=angle,
        controller_status=controller_status,
        sonar_status=sonar_status,
        mpu_status=mpu_status,
        degraded=degraded,
        emergency=emergency,
    )
    return seq, state


def parse_decision_b2(data: bytes) -> tuple[int, Decision]:
    """Decode board 2's CRC-protected decision packet; return (sequence, decision)."""
    packet = _locate(bytes(data), _DECISION_B2_LEN)
    seq, cmd = packet[1], packet[2]
    received_crc = packet[8] | (packet[9] << 8)
    if packet[10] != EOF:
        raise ProtocolError("bad end-of-frame byte")
    if cmd != CMD_DECISION:
        raise ProtocolError(f"unexpected command 0x{cmd:02X}")
    if crc16(packet[1:8]) != received_crc:
        raise ProtocolError("CRC mismatch")
    setpoint = int.from_bytes(packet[5:7], "little", signed=True)
    decision = Decision(setpoint=float(setpoint), direction=packet[4], led=packet[7])
    return seq, decision


def reconstruct_global_state(b1: PartialStateB1, b2: PartialStateB2) -> GlobalState:
    """Merge both partial states; either board's emergency raises the system one."""
    return GlobalState(
        b1=b1,
        b2=b2,
        system_emergency=b1.emergency > 0 or b2.emergency > 0,
        communication_degraded=False,
    )


def decision_stop(state: GlobalState | None = None) -> Decision:
    """The emergency stop decision used in safe mode."""
    return Decision(
        setpoint=0.0,
        direction=Direction.STOP_EMERGENCY,
        led=LedMode.EMERGENCY,
        decision_board=1,
        system_mode=SystemMode.EMERGENCY,
    )


def is_discordant(a: Decision, b: Decision) -> bool:
    """True when two decisions differ in any field."""
    return (
        a.direction != b.direction
        or a.setpoint != b.setpoint
        or a.led != b.led
        or a.decision_board != b.decision_board
        or a.system_mode != b.system_mode
    )