"""Shared data model for the two-board rover link."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class Direction(IntEnum):
    """Motion command carried in a decision."""

    INIT = 0
    STOP_EMERGENCY = 1
    FORWARD = 2
    REVERSE = 3
    LEFT_SPOT = 4
    RIGHT_SPOT = 5
    LEFT_PIVOT = 6
    RIGHT_PIVOT = 7


class LedMode(IntEnum):
    """Headlight mode carried in a decision."""

    OFF = 8
    ON = 9
    AUTO = 10
    EMERGENCY = 11


class SystemMode(IntEnum):
    """Overall operating mode of the rover."""

    NORMAL = 12
    DEGRADED = 13
    EMERGENCY = 14


class CommState(IntEnum):
    """States of the board-to-board exchange cycle."""

    START = 0
    SAFE_MODE = 1
    SERIALIZE_SENSOR_DATA = 2
    SERIALIZE_SEND_B1 = 3
    PACKET_SENT = 4
    RECEIVE_PACKET = 5
    READ_PACKET = 6
    PACKET_RECEIVED = 7
    GLOBAL_STATE_RECONSTRUCTION = 8
    TAKE_DECISION_B1 = 9
    SERIALIZE_DECISION_B1 = 10
    DECISION_SEND = 11
    DECISION_SENT = 12
    READ_DECISION_B2 = 13
    DECISION_RECEIVED = 14
    ACTUATE_DECISION = 15
    IMPOSSIBLE_SEND_TO_B2 = 16
    IMPOSSIBLE_RECEIVE_FROM_B2 = 17


@dataclass(frozen=True)
class ControllerState:
    """Gamepad snapshot: right stick Y, triggers and buttons (1 = pressed)."""

    ry: int = 0
    l2: int = 0
    r2: int = 0
    cross: int = 0
    circle: int = 0
    square: int = 0
    triangle: int = 0
    l1: int = 0
    r1: int = 0
    battery: int = 0


@dataclass(frozen=True)
class PartialStateB1:
    """Sensor state owned by board 1."""

    vel_fl: float = 0.0
    vel_fr: float = 0.0
    vel_rl: float = 0.0
    vel_rr: float = 0.0
    battery_level: int = 0
    temperature: int = 0
    photoresistor: int = 0
    encoder_status: int = 0
    battery_status: int = 0
    temp_status: int = 0
    emergency: int = 0
    degraded: int = 0


@dataclass(frozen=True)
class PartialStateB2:
    """Sensor and controller state owned by board 2."""

    controller: ControllerState = field(default_factory=ControllerState)
    dist_left: int = 0
    dist_center: int = 0
    dist_right: int = 0
    angle: int = 0
    controller_status: int = 0
    sonar_status: int = 0
    mpu_status: int = 0
    degraded: int = 0
    emergency: int = 0


@dataclass(frozen=True)
class Decision:
    """An actuation decision taken by one of the boards."""

    setpoint: float = 0.0
    direction: int = Direction.INIT
    led: int = 0
    decision_board: int = 0
    system_mode: int = 0


@dataclass(frozen=True)
class GlobalState:
    """Combined view of both boards plus system-level flags."""

    b1: PartialStateB1 = field(default_factory=PartialStateB1)
    b2: PartialStateB2 = field(default_factory=PartialStateB2)
    system_emergency: bool = False
    communication_degraded: bool = False