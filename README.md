# roverlink

`roverlink` implements the link between the two control boards of a rover.
In each control cycle, board 1 (B1) and its peer, board 2 (B2), swap their
partial views of the vehicle over a serial line. B1 then works out a drive
decision and sends it to B2. It reads back B2's decision and records
whether the two decisions disagree.

The package uses only the standard library.

## Modules

### `roverlink.types`

This module holds the data that moves through the system. The records are
frozen dataclasses.

- `Direction`, `LedMode` and `SystemMode` are the command codes carried in
  a decision.
- `CommState` lists the states of the exchange state machine.
- `ControllerState` is the gamepad snapshot sent by B2: right stick Y,
  triggers, and buttons.
- `PartialStateB1` holds B1's wheel speeds, battery, temperature,
  photoresistor and status flags.
- `PartialStateB2` holds B2's controller snapshot, its left, centre and
  right distances, its angle and its status flags.
- `Decision` carries a setpoint, a direction, an LED mode, the deciding
  board and a system mode.
- `GlobalState` is both partial states together with the
  `system_emergency` and `communication_degraded` flags.

### `roverlink.protocol`

This module handles the wire format. Every frame starts with `0xAA` and
ends with `0x55`. Byte 1 is a sequence number and byte 2 is a command.

| Frame            | Size     | Command | Notes                                        |
|------------------|----------|---------|----------------------------------------------|
| B1 partial state | 32 bytes | `0x20`  | 27-byte payload, little-endian floats        |
| B1 decision      | 15 bytes | `0x30`  | 6-byte payload, zero-padded after end byte   |
| B2 partial state | 30 bytes | `0x21`  | 25-byte payload                              |
| B2 decision      | 11 bytes | `0x30`  | CRC-16 over bytes 1–7, stored little-endian  |

The module provides these functions:

- `crc16(data)` computes a CRC-16 with polynomial `0x1021` and initial
  value `0xFFFF`.
- `serialize_partial_state_b1(state, sequence)` and
  `serialize_decision(decision, sequence)` build outgoing frames as
  `bytes`.
- `parse_partial_state_b2(data)` and `parse_decision_b2(data)` decode a
  received buffer and return a `(sequence, value)` tuple. Each one looks
  for the first start byte that leaves room for a whole frame. It raises
  `ProtocolError`, a subclass of `ValueError`, in any of these cases:
  - the buffer is too short;
  - no start byte is found;
  - the end byte is wrong;
  - the command is wrong;
  - the payload length is wrong (B2 state only);
  - the CRC does not match (B2 decision only).

  A parsed B2 decision carries only the direction, the setpoint and the
  LED mode.
- `reconstruct_global_state(b1, b2)` merges the two partial states. The
  system is in emergency if either board reports one.
- `decision_stop(state)` returns the emergency-stop decision used in safe
  mode.
- `is_discordant(a, b)` reports whether two decisions differ in
  direction, setpoint, LED, deciding board or system mode.

### `roverlink.decision`

`DecisionMaker().decide(state)` turns a `GlobalState` into a `Decision`.
It is meant to be called once per cycle. The object keeps state between
calls:

- the previous controller snapshot, used to detect button presses;
- the LED mode;
- two side-obstacle timers. A timer is set to 2.0 and counts down by 0.01
  on each call.

Pressing R1 cycles the LED mode OFF → ON → AUTO. Pressing L1 cycles it
OFF → AUTO → ON.

`decide` applies these rules in order:

1. A system emergency returns an emergency stop, decided by board 2.
2. In degraded mode (B1 or B2 degraded), any distance under 400 cm
   returns a stop.
3. Any distance under 75 cm stops the rover.
4. A left or right distance between 150 and 300 cm sets that side's
   timer. When the centre distance is also in that range and a timer is
   running, the rover makes a spot turn at half of the maximum speed
   (1.34). If the left timer is running and is not below the right timer,
   it turns left. Otherwise, if the right timer is running and is higher,
   it turns right.
5. Otherwise the gamepad drives. It sets the direction to one of: spot
   turn (square plus triggers), pivot turn (circle plus triggers),
   reverse (circle and cross), forward (right stick), stop, or idle.
6. The setpoint is the speed × 1000, as a 16-bit integer. In degraded
   mode the setpoint is halved, and the deciding board is 1 when B1's
   encoder is healthy and 2 when it is not.

### `roverlink.link`

`Communicator(io, decision_maker=None)` runs B1's side of the handshake.
The `io` argument is a `BoardIO`. `BoardIO` is an abstract class: subclass
it and implement these methods:

- `read_pin(pin)` and `write_pin(pin, high)` for the RTS/CTS,
  board-alive and LED lines named by `Pin`;
- `transmit(data, timeout_ms)` and `receive(size, timeout_ms)` for the
  serial line. Both raise `TransferError` on failure;
- `ticks_ms()` for a millisecond clock.

The `Communicator` methods are:

- `step()` runs states until one exchange has been completed and
  compared. If the peer is not alive, or a handshake line times out after
  10 ms, or a transfer still fails after one retry, the machine falls back
  to safe mode. Safe mode records an emergency-stop decision and starts
  over. As a result, `step()` does not return until an exchange succeeds.
- `actuation_data()` returns `(global_state, peer_decision, discordant)`.
- `reset()` reloads B1's initial sensor values, clears the global flags,
  raises the board-alive line and sets the state back to `START`. The
  sequence number and the decision maker's memory are kept.

`run(io, cycles=None)` creates a communicator, switches the LED on, and
runs `cycles` exchanges, toggling the LED after each one. It then returns
the communicator. With `cycles=None` it runs forever.

## Example

```python
from roverlink.decision import DecisionMaker
from roverlink.protocol import ProtocolError, crc16, parse_decision_b2
from roverlink.types import ControllerState, GlobalState, PartialStateB2

print(hex(crc16(b"123456789")))

try:
    parse_decision_b2(b"\x00" * 11)
except ProtocolError as exc:
    print("rejected:", exc)

state = GlobalState(
    b2=PartialStateB2(
        controller=ControllerState(ry=512),
        dist_left=1000,
        dist_center=1000,
        dist_right=1000,
    )
)
decision = DecisionMaker().decide(state)
print(decision.direction.name, decision.setpoint)
```

## What it does not do

The package has no `BoardIO` backed by real pins or a real serial port,
and it has no command-line tool. To run the link, supply your own
`BoardIO` implementation, either for hardware or for a simulation.