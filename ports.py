"""
Intcode I/O Ports
=================
The two devices an Intcode machine talks to:

  - an input port, read once per IN instruction
  - an output port, appended to once per OUT instruction

Ports know nothing about machine faults.  The engine asks ``has_data``
before it reads and turns an empty port into an ``InputExhausted`` fault.
"""

from __future__ import annotations
from collections import deque
from typing import Callable, Iterable, Optional


# ---------------------------------------------------------------------------
#  Input
# ---------------------------------------------------------------------------

class InputPort:
    """Abstract input device."""

    @property
    def has_data(self) -> bool:
        return True

    def read(self) -> int:
        """Return the next input value."""
        raise NotImplementedError


class FixedInput(InputPort):
    """Single-slot input register: every read returns the same value."""

    def __init__(self, value: int = 0):
        self.value = value
        self.reads = 0

    def read(self) -> int:
        self.reads += 1
        return self.value

    def __repr__(self) -> str:
        return f"FixedInput({self.value})"


class QueueInput(InputPort):
    """FIFO of input values, each consumed by exactly one read."""

    def __init__(self, values: Iterable[int] = ()):
        self.buffer: deque[int] = deque(values)

    def inject(self, *values: int):
        """Queue more values behind the ones already pending."""
        self.buffer.extend(values)

    @property
    def has_data(self) -> bool:
        return len(self.buffer) > 0

    @property
    def pending(self) -> tuple[int, ...]:
        return tuple(self.buffer)

    def read(self) -> int:
        if not self.buffer:
            raise IndexError("input queue is empty")
        return self.buffer.popleft()

    def __repr__(self) -> str:
        return f"QueueInput({list(self.buffer)})"


# ---------------------------------------------------------------------------
#  Output
# ---------------------------------------------------------------------------

class OutputPort:
    """Append-only output sequence."""

    def __init__(self, on_output: Optional[Callable[[int], None]] = None):
        self.values: list[int] = []
        self._drained = 0

        # Callbacks
        self.on_output = on_output  # called with each value as it is written

    def write(self, value: int):
        self.values.append(value)
        if self.on_output:
            self.on_output(value)

    @property
    def last(self) -> Optional[int]:
        return self.values[-1] if self.values else None

    def drain(self) -> list[int]:
        """Return values written since the previous drain.

        The full history in ``values`` is left untouched.
        """
        fresh = self.values[self._drained:]
        self._drained = len(self.values)
        return fresh

    def __len__(self) -> int:
        return len(self.values)
