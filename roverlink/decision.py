"""Driving decision logic run on every exchange cycle."""

from __future__ import annotations

import struct

from .types import (
    ControllerState,
    Decision,
    Direction,
    GlobalState,
    LedMode,
    SystemMode,
)


def _f32(value: float) -> float:
    """Round a value to single precision."""
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _to_int16(value: float) -> int:
    return ((int(value) + 0x8000) & 0xFFFF) - 0x8000


DT = _f32(0.01)
MEMORY_WINDOW = 2.0
MAX_SPEED = 1.34
DEADZONE = 0.10
OBSTACLE_THRESH_STOP = 75.0
DIST_FAR_MIN = 150.0
DIST_FAR_MAX = 300.0
OBSTACLE_THRESH_STOP_DEGRADED = 400.0

_STEER_THRESHOLD = _f32(0.1)

_LED_NEXT_R1 = {LedMode.OFF: LedMode.ON, LedMode.ON: LedMode.AUTO, LedMode.AUTO: LedMode.OFF}
_LED_NEXT_L1 = {LedMode.OFF: LedMode.AUTO, LedMode.AUTO: LedMode.ON, LedMode.ON: LedMode.OFF}


class DecisionMaker:
    """Turns the global state into a decision, remembering button edges,
    the LED mode and recently seen side obstacles between calls."""

    def __init__(self) -> None:
        self._prev = ControllerState()
        self._led = LedMode.OFF
        self._timer_left = 0.0
        self._timer_right = 0.0

    def decide(self, state: GlobalState) -> Decision:
        ctrl = state.b2.controller

        if state.system_emergency:
            self._prev = ctrl
            return Decision(
                setpoint=0.0,
                direction=Direction.STOP_EMERGENCY,
                led=LedMode.EMERGENCY,
                decision_board=2,
                system_mode=SystemMode.EMERGENCY,
            )

        dist_c = float(state.b2.dist_center)
        dist_l = float(state.b2.dist_left)
        dist_r = float(state.b2.dist_right)

        input_y = 0.0 if ctrl.ry < 0 else ctrl.ry / 512.0
        input_x = ctrl.r2 / 1020.0 - ctrl.l2 / 1020.0
        if abs(input_y) < DEADZONE:
            input_y = 0.0
        if abs(input_x) < DEADZONE:
            input_x = 0.0

        if self._timer_left > 0.0:
            self._timer_left = _f32(self._timer_left - DT)
        if self._timer_right > 0.0:
            self._timer_right = _f32(self._timer_right - DT)

        self._update_led(ctrl)

        degraded = state.b1.degraded == 1 or state.b2.degraded == 1
        board = 1 if state.b1.encoder_status == 1 else 2

        if degraded and min(dist_c, dist_l, dist_r) < OBSTACLE_THRESH_STOP_DEGRADED:
            self._prev = ctrl
            return Decision(
                setpoint=0.0,
                direction=Direction.STOP_EMERGENCY,
                led=self._led,
                decision_board=board,
                system_mode=SystemMode.DEGRADED,
            )

        avoidance = self._avoid(input_y, dist_l, dist_c, dist_r)
        direction, vel = avoidance if avoidance else self._manual(ctrl, input_x, input_y)
        self._prev = ctrl

        if degraded:
            setpoint = _to_int16(_f32(_f32(vel * 0.5) * 1000.0))
            return Decision(float(setpoint), direction, self._led, board, SystemMode.DEGRADED)
        setpoint = _to_int16(_f32(vel * 1000.0))
        return Decision(float(setpoint), direction, self._led, 0, SystemMode.NORMAL)

    def _update_led(self, ctrl: ControllerState) -> None:
        if ctrl.r1 == 1 and self._prev.r1 != 1:
            self._led = _LED_NEXT_R1.get(self._led, self._led)
        elif ctrl.l1 == 1 and self._prev.l1 != 1:
            self._led = _LED_NEXT_L1.get(self._led, self._led)

    def _avoid(self, input_y, dist_l, dist_c, dist_r):
        if input_y < 0.0:
            return None
        if min(dist_c, dist_l, dist_r) < OBSTACLE_THRESH_STOP:
            return Direction.STOP_EMERGENCY, 0.0
        if DIST_FAR_MIN <= dist_l <= DIST_FAR_MAX:
            self._timer_left = MEMORY_WINDOW
        if DIST_FAR_MIN <= dist_r <= DIST_FAR_MAX:
            self._timer_right = MEMORY_WINDOW
        if DIST_FAR_MIN <= dist_c <= DIST_FAR_MAX:
            half_speed = _f32(MAX_SPEED * 0.5)
            if self._timer_left > 0.0 and self._timer_left >= self._timer_right:
                return Direction.LEFT_SPOT, half_speed
            if self._timer_right > 0.0 and self._timer_right > self._timer_left:
                return Direction.RIGHT_SPOT, half_speed
        return None

    def _manual(self, ctrl, input_x, input_y):
        prev = self._prev
        sqr, prev_sqr = ctrl.square == 1, prev.square == 1
        cir, prev_cir = ctrl.circle == 1, prev.circle == 1
        tri, prev_tri = ctrl.triangle == 1, prev.triangle == 1
        crs, prev_crs = ctrl.cross == 1, prev.cross == 1

        spot = pivot = linear = rev = 0.0
        if sqr and not prev_sqr and not cir and not tri and not crs:
            spot = _f32(input_x) * 0.5
        elif cir and not prev_cir and not sqr and not tri and not crs:
            pivot = _f32(input_x) * 0.5
        elif cir and not prev_cir and crs and not prev_crs and not sqr and not tri:
            rev = -0.5
        elif tri and not prev_tri and not cir and not crs and not sqr:
            linear = 0.0
        else:
            linear = _f32(_f32(input_y) * MAX_SPEED)

        if abs(spot) > _STEER_THRESHOLD:
            return (Direction.RIGHT_SPOT if spot > 0 else Direction.LEFT_SPOT), abs(spot)
        if abs(pivot) > _STEER_THRESHOLD:
            return (Direction.RIGHT_PIVOT if pivot > 0 else Direction.LEFT_PIVOT), abs(pivot)
        if abs(linear) > _STEER_THRESHOLD:
            return Direction.FORWARD, abs(linear)
        if rev == -0.5:
            return Direction.REVERSE, abs(rev)
        if linear == 0.0 and input_y > 0.0:
            return Direction.STOP_EMERGENCY, 0.0
        return Direction.INIT, 0.0