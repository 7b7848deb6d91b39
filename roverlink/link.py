"""Board-to-board exchange cycle run by board 1."""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from .decision import DecisionMaker
from .protocol import (
    DECISION_PACKET_SIZE,
    PACKET_B2_SIZE,
    ProtocolError,
    decision_stop,
    is_discordant,
    parse_decision_b2,
    parse_partial_state_b2,
    reconstruct_global_state,
    serialize_decision,
    serialize_partial_state_b1,
)
from .types import CommState, Decision, GlobalState, PartialStateB1, PartialStateB2

UART_TIMEOUT_PARTIAL_MS = 3
UART_TIMEOUT_DECISION_MS = 1
TIMEOUT_MS = 10


class Pin(Enum):
    """Signal lines used by board 1, named after the port pin they sit on."""

    RTS_B2 = "PC0"
    CTS_B2 = "PC1"
    LED = "PA5"
    BOARD_ALIVE_B1 = "PA11"
    BOARD_ALIVE_B2 = "PA12"
    CTS_B1 = "PB6"
    RTS_B1 = "PB7"


class TransferError(Exception):
    """Raised by a BoardIO when a serial transfer fails or times out."""


class BoardIO(ABC):
    """Access to the pins, the serial line and the millisecond clock."""

    @abstractmethod
    def read_pin(self, pin: Pin) -> bool:
        """Return True when the pin is high."""

    @abstractmethod
    def write_pin(self, pin: Pin, high: bool) -> None:
        """Drive the pin high or low."""

    @abstractmethod
    def transmit(self, data: bytes, timeout_ms: int) -> None:
        """Send data; raise TransferError on failure."""

    @abstractmethod
    def receive(self, size: int, timeout_ms: int) -> bytes:
        """Read exactly size bytes; raise TransferError on failure."""

    @abstractmethod
    def ticks_ms(self) -> int:
        """Milliseconds since an arbitrary start."""


def _int16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


class Communicator:
    """Runs the handshake, packet exchange and decision comparison with board 2."""

    def __init__(self, io: BoardIO, decision_maker: DecisionMaker | None = None) -> None:
        self.io = io
        self.decision_maker = decision_maker if decision_maker is not None else DecisionMaker()
        self.state = CommState.START
        self.global_state = GlobalState()
        self.partial_state_b1 = PartialStateB1()
        self.partial_state_b2 = PartialStateB2()
        self.decision_b1 = Decision()
        self.decision_b2 = Decision()
        self.discordant = False
        self.seq_num = 0
        self._failed_sends = 0
        self._receive_errors = 0
        self._tx_state = b""
        self._tx_decision = b""
        self._handlers: dict[CommState, Callable[[], CommState]] = {
            CommState.START: self._start,
            CommState.SAFE_MODE: self._safe_mode,
            CommState.SERIALIZE_SENSOR_DATA: self._serialize_sensor_data,
            CommState.SERIALIZE_SEND_B1: self._send_state,
            CommState.PACKET_SENT: self._packet_sent,
            CommState.RECEIVE_PACKET: self._receive_packet,
            CommState.READ_PACKET: self._read_packet,
            CommState.PACKET_RECEIVED: self._packet_received,
            CommState.GLOBAL_STATE_RECONSTRUCTION: self._reconstruct,
            CommState.TAKE_DECISION_B1: self._take_decision,
            CommState.SERIALIZE_DECISION_B1: self._serialize_decision,
            CommState.DECISION_SEND: self._send_decision,
            CommState.DECISION_SENT: self._decision_sent,
            CommState.READ_DECISION_B2: self._read_decision,
            CommState.DECISION_RECEIVED: self._decision_received,
            CommState.ACTUATE_DECISION: self._actuate,
            CommState.IMPOSSIBLE_SEND_TO_B2: self._impossible_send,
            CommState.IMPOSSIBLE_RECEIVE_FROM_B2: self._impossible_receive,
        }
        self.reset()

    def reset(self) -> None:
        """Load board 1's initial sensor state and announce that it is alive."""
        self.global_state = dataclasses.replace(
            self.global_state, system_emergency=False, communication_degraded=False
        )
        self.partial_state_b1 = PartialStateB1(
            vel_fl=50.0,
            vel_fr=50.0,
            vel_rl=50.0,
            vel_rr=41.0,
            battery_level=100,
            temperature=20,
            photoresistor=2005,
            encoder_status=1,
            battery_status=1,
            temp_status=1,
            emergency=0,
            degraded=0,
        )
        self.io.write_pin(Pin.BOARD_ALIVE_B1, True)
        self.state = CommState.START

    def step(self) -> None:
        """Run states until one full exchange has been completed and compared."""
        while True:
            current = self.state
            self.state = self._handlers.get(current, lambda: CommState.START)()
            if current is CommState.ACTUATE_DECISION:
                return

    def actuation_data(self) -> tuple[GlobalState, Decision, bool]:
        """Return the global state, board 2's decision and whether the boards disagree."""
        return self.global_state, self.decision_b2, self.discordant

    # -- helpers ----------------------------------------------------------

    def _wait_for(self, pin: Pin, level: bool) -> bool:
        start = self.io.ticks_ms()
        while ((self.io.ticks_ms() - start) & 0xFFFFFFFF) < TIMEOUT_MS:
            if self.io.read_pin(pin) == level:
                return True
        return False

    def _transmit(self, packet: bytes, timeout_ms: int) -> bool:
        while True:
            try:
                self.io.transmit(packet, timeout_ms)
                return True
            except TransferError:
                self._failed_sends += 1
            if self._failed_sends > 1:
                return False

    def _receive(self, size: int, timeout_ms: int, parse):
        while True:
            try:
                return parse(self.io.receive(size, timeout_ms))
            except (TransferError, ProtocolError):
                self._receive_errors += 1
            if self._receive_errors > 1:
                return None

    def _advance_seq(self) -> None:
        self.seq_num = _int16(self.seq_num + 1)

    # -- states -----------------------------------------------------------

    def _start(self) -> CommState:
        if not self.io.read_pin(Pin.BOARD_ALIVE_B2):
            return CommState.SAFE_MODE
        self.io.write_pin(Pin.RTS_B1, True)
        return CommState.SERIALIZE_SENSOR_DATA

    def _safe_mode(self) -> CommState:
        merged = reconstruct_global_state(self.partial_state_b1, self.partial_state_b2)
        self.global_state = dataclasses.replace(merged, system_emergency=True)
        self.decision_b1 = decision_stop(self.global_state)
        return CommState.START

    def _serialize_sensor_data(self) -> CommState:
        self._tx_state = serialize_partial_state_b1(self.partial_state_b1, self.seq_num & 0xFF)
        if self._wait_for(Pin.CTS_B2, True):
            return CommState.SERIALIZE_SEND_B1
        return CommState.SAFE_MODE

    def _send_state(self) -> CommState:
        if not self._transmit(self._tx_state, UART_TIMEOUT_PARTIAL_MS):
            return CommState.IMPOSSIBLE_SEND_TO_B2
        self._advance_seq()
        return CommState.PACKET_SENT

    def _packet_sent(self) -> CommState:
        self._failed_sends = 0
        self.io.write_pin(Pin.RTS_B1, False)
        if self._wait_for(Pin.RTS_B2, True):
            return CommState.RECEIVE_PACKET
        return CommState.SAFE_MODE

    def _receive_packet(self) -> CommState:
        self.io.write_pin(Pin.CTS_B1, True)
        return CommState.READ_PACKET

    def _read_packet(self) -> CommState:
        result = self._receive(PACKET_B2_SIZE, UART_TIMEOUT_PARTIAL_MS, parse_partial_state_b2)
        if result is None:
            return CommState.IMPOSSIBLE_RECEIVE_FROM_B2
        seq, self.partial_state_b2 = result
        self.seq_num = _int16(seq)
        self._advance_seq()
        return CommState.PACKET_RECEIVED

    def _packet_received(self) -> CommState:
        self._receive_errors = 0
        self.io.write_pin(Pin.CTS_B1, False)
        if self._wait_for(Pin.RTS_B2, False):
            return CommState.GLOBAL_STATE_RECONSTRUCTION
        return CommState.SAFE_MODE

    def _reconstruct(self) -> CommState:
        self.global_state = reconstruct_global_state(self.partial_state_b1, self.partial_state_b2)
        return CommState.TAKE_DECISION_B1

    def _take_decision(self) -> CommState:
        self.decision_b1 = self.decision_maker.decide(self.global_state)
        return CommState.SERIALIZE_DECISION_B1

    def _serialize_decision(self) -> CommState:
        self.io.write_pin(Pin.RTS_B1, True)
        self._tx_decision = serialize_decision(self.decision_b1, self.seq_num & 0xFF)
        if self._wait_for(Pin.CTS_B2, True):
            return CommState.DECISION_SEND
        return CommState.SAFE_MODE

    def _send_decision(self) -> CommState:
        if not self._transmit(self._tx_decision, UART_TIMEOUT_DECISION_MS):
            return CommState.IMPOSSIBLE_SEND_TO_B2
        self._advance_seq()
        return CommState.DECISION_SENT

    def _decision_sent(self) -> CommState:
        self.io.write_pin(Pin.RTS_B1, False)
        self._failed_sends = 0
        if self._wait_for(Pin.RTS_B2, True):
            return CommState.READ_DECISION_B2
        return CommState.SAFE_MODE

    def _read_decision(self) -> CommState:
        self.io.write_pin(Pin.CTS_B1, True)
        result = self._receive(DECISION_PACKET_SIZE, UART_TIMEOUT_DECISION_MS, parse_decision_b2)
        if result is None:
            return CommState.IMPOSSIBLE_RECEIVE_FROM_B2
        seq, self.decision_b2 = result
        self.seq_num = _int16(seq)
        self._advance_seq()
        return CommState.DECISION_RECEIVED

    def _decision_received(self) -> CommState:
        self._receive_errors = 0
        self.io.write_pin(Pin.CTS_B1, False)
        if self._wait_for(Pin.RTS_B2, False):
            return CommState.ACTUATE_DECISION
        return CommState.SAFE_MODE

    def _actuate(self) -> CommState:
        self.discordant = is_discordant(self.decision_b1, self.decision_b2)
        return CommState.START

    def _impossible_send(self) -> CommState:
        self._failed_sends = 0
        self.io.write_pin(Pin.RTS_B1, False)
        return CommState.SAFE_MODE

    def _impossible_receive(self) -> CommState:
        self._receive_errors = 0
        self.io.write_pin(Pin.CTS_B1, False)
        return CommState.SAFE_MODE


def run(io: BoardIO, cycles: int | None = None) -> Communicator:
    """Start the link and run exchange cycles, blinking the LED after each one.

    With cycles set to None the loop never ends.
    """
    communicator = Communicator(io)
    led = True
    io.write_pin(Pin.LED, led)
    done = 0
    while cycles is None or done < cycles:
        communicator.step()
        led = not led
        io.write_pin(Pin.LED, led)
        done += 1
    return communicator