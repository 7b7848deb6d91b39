import struct

import pytest

from roverlink.protocol import (
    CMD_DECISION,
    CMD_PARTIAL_STATE_B1,
    CMD_PARTIAL_STATE_B2,
    DECISION_PACKET_SIZE,
    EOF,
    PACKET_B1_SIZE,
    PACKET_B2_SIZE,
    SOF,
    ProtocolError,
    crc16,
    decision_stop,
    is_discordant,
    parse_decision_b2,
    parse_partial_state_b2,
    reconstruct_global_state,
    serialize_decision,
    serialize_partial_state_b1,
)
from roverlink.types import (
    ControllerState,
    Decision,
    Direction,
    GlobalState,
    LedMode,
    PartialStateB1,
    PartialStateB2,
    SystemMode,
)


def build_b2(seq=7, ry=-300, l2=100, r2=900, buttons=(1, 0, 1, 0, 1, 0, 80),
             dl=120, dc=340, dr=560, angle=45, statuses=(1, 1, 1, 0, 0),
             cmd=0x21, length=25, eof=0x55):
    payload = struct.pack("<hHH7BHHHB5B", ry, l2, r2, *buttons, dl, dc, dr, angle, *statuses)
    return bytes([0xAA, seq, cmd, length]) + payload + bytes([eof])


def build_decision(seq=9, direction=2, setpoint=-250, led=9, cmd=0x30, eof=0x55, crc=None):
    body = bytes([seq, cmd, 6, direction]) + setpoint.to_bytes(2, "little", signed=True) + bytes([led])
    if crc is None:
        crc = crc16(body)
    return bytes([0xAA]) + body + crc.to_bytes(2, "little") + bytes([eof])


def sample_b1():
    return PartialStateB1(
        vel_fl=50.0, vel_fr=50.0, vel_rl=50.0, vel_rr=41.0,
        battery_level=100, temperature=20, photoresistor=2005,
        encoder_status=1, battery_status=1, temp_status=1,
        emergency=0, degraded=0,
    )


def test_crc16_check_value():
    assert crc16(b"123456789") == 0x29B1


def test_crc16_empty_is_initial_value():
    assert crc16(b"") == 0xFFFF


def test_crc16_detects_single_bit_change():
    assert crc16(b"\x01\x02\x03") != crc16(b"\x01\x02\x02")


def test_serialize_b1_layout():
    packet = serialize_partial_state_b1(sample_b1(), 5)
    assert len(packet) == PACKET_B1_SIZE
    assert packet[:4] == bytes([SOF, 5, CMD_PARTIAL_STATE_B1, 27])
    assert packet[-1] == EOF
    assert struct.unpack_from("<4f", packet, 4) == (50.0, 50.0, 50.0, 41.0)
    assert packet[20:22] == bytes([100, 20])
    assert int.from_bytes(packet[22:26], "little") == 2005
    assert packet[26:31] == bytes([1, 1, 1, 0, 0])


def test_serialize_b1_masks_sequence():
    packet = serialize_partial_state_b1(PartialStateB1(), 0x1FF)
    assert packet[1] == 0xFF


def test_serialize_decision_layout():
    decision = Decision(setpoint=670.0, direction=Direction.FORWARD, led=LedMode.ON,
                        decision_board=1, system_mode=SystemMode.NORMAL)
    packet = serialize_decision(decision, 3)
    assert len(packet) == DECISION_PACKET_SIZE
    assert packet[:4] == bytes([SOF, 3, CMD_DECISION, 6])
    assert packet[4:6] == (670).to_bytes(2, "little")
    assert packet[6:11] == bytes([Direction.FORWARD, LedMode.ON, 1, SystemMode.NORMAL, EOF])
    assert packet[11:] == bytes(4)


def test_serialize_decision_negative_setpoint_wraps():
    packet = serialize_decision(Decision(setpoint=-500.0), 0)
    assert int.from_bytes(packet[4:6], "little", signed=True) == -500


def test_parse_b2_fields():
    seq, state = parse_partial_state_b2(build_b2())
    assert seq == 7
    assert state.controller == ControllerState(
        ry=-300, l2=100, r2=900, cross=1, circle=0, square=1,
        triangle=0, l1=1, r1=0, battery=80,
    )
    assert (state.dist_left, state.dist_center, state.dist_right) == (120, 340, 560)
    assert state.angle == 45
    assert (state.controller_status, state.sonar_status, state.mpu_status) == (1, 1, 1)
    assert (state.degraded, state.emergency) == (0, 0)


def test_parse_b2_accepts_leading_noise():
    seq, state = parse_partial_state_b2(b"\x00\x13" + build_b2(seq=1))
    assert seq == 1
    assert state.dist_right == 560


def test_parse_b2_uses_first_start_byte():
    with pytest.raises(ProtocolError):
        parse_partial_state_b2(b"\xaa" + build_b2())


@pytest.mark.parametrize(
    "packet",
    [
        build_b2(eof=0x00),
        build_b2(cmd=0x20),
        build_b2(length=24),
        build_b2()[:PACKET_B2_SIZE - 1],
        b"\x00" * PACKET_B2_SIZE,
    ],
)
def test_parse_b2_rejects(packet):
    with pytest.raises(ProtocolError):
        parse_partial_state_b2(packet)


def test_parse_b2_command_constant():
    assert build_b2()[2] == CMD_PARTIAL_STATE_B2
    assert parse_partial_state_b2(bytearray(build_b2()))[0] == 7


def test_parse_decision_fields():
    seq, decision = parse_decision_b2(build_decision())
    assert seq == 9
    assert decision.direction == Direction.FORWARD
    assert decision.setpoint == -250.0
    assert decision.led == LedMode.ON
    assert decision.decision_board == 0
    assert decision.system_mode == 0


def test_parse_decision_in_padded_buffer():
    buffer = build_decision(seq=4).ljust(DECISION_PACKET_SIZE, b"\x00")
    seq, decision = parse_decision_b2(buffer)
    assert seq == 4
    assert decision.setpoint == -250.0


@pytest.mark.parametrize(
    "packet",
    [
        build_decision(crc=0),
        build_decision(eof=0x00),
        build_decision(cmd=0x31),
        build_decision()[:10],
    ],
)
def test_parse_decision_rejects(packet):
    with pytest.raises(ProtocolError):
        parse_decision_b2(packet)


@pytest.mark.parametrize(
    "b1_em, b2_em, expected",
    [(0, 0, False), (1, 0, True), (0, 1, True), (1, 1, True)],
)
def test_reconstruct_emergency(b1_em, b2_em, expected):
    state = reconstruct_global_state(PartialStateB1(emergency=b1_em), PartialStateB2(emergency=b2_em))
    assert state.system_emergency is expected
    assert state.communication_degraded is False
    assert state.b1.emergency == b1_em
    assert state.b2.emergency == b2_em


def test_decision_stop():
    decision = decision_stop(GlobalState())
    assert decision == Decision(
        setpoint=0.0, direction=Direction.STOP_EMERGENCY, led=LedMode.EMERGENCY,
        decision_board=1, system_mode=SystemMode.EMERGENCY,
    )


def test_equal_decisions_are_concordant():
    assert is_discordant(decision_stop(), decision_stop()) is False


@pytest.mark.parametrize(
    "change",
    [
        {"direction": Direction.FORWARD},
        {"setpoint": 1.0},
        {"led": LedMode.OFF},
        {"decision_board": 2},
        {"system_mode": SystemMode.NORMAL},
    ],
)
def test_any_field_difference_is_discordant(change):
    base = decision_stop()
    other = Decision(**{**base.__dict__, **change})
    assert is_discordant(base, other) is True