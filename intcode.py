"""
Intcode Virtual Machine
=======================
A step-wise emulator for the Intcode stored-program computer.  Code and
data share one growable array of signed 64-bit integers.

Every instruction is decoded from the integer at the instruction pointer:
the two low decimal digits select the opcode, each higher digit gives the
addressing mode of one operand (hundreds digit → operand 1, thousands →
operand 2, ten-thousands → operand 3).  The fetch/decode/execute loop
reads the operands, applies the effect, then advances the pointer.

Usage:
  from intcode import Intcode
  vm = Intcode("104,1125899906842624,99")
  vm.run()
  vm.outputs   # [1125899906842624]
"""

from __future__ import annotations
import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ports import FixedInput, InputPort, OutputPort, QueueInput

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MASK64 = (1 << 64) - 1
SIGN64 = 1 << 63
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

OVERFLOW_RAISE = "raise"
OVERFLOW_WRAP = "wrap"
OVERFLOW_POLICIES = (OVERFLOW_RAISE, OVERFLOW_WRAP)

_INT_TOKEN = re.compile(r"-?[0-9]+")

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u64(v: int) -> int:
    """Mask to unsigned 64 bits."""
    return v & MASK64

def s64(v: int) -> int:
    """Interpret a 64-bit value as signed."""
    v = u64(v)
    return v - (1 << 64) if v >= SIGN64 else v

def fits64(v: int) -> bool:
    return INT64_MIN <= v <= INT64_MAX

def mode_digit(instr: int, k: int) -> int:
    """Addressing-mode digit for the k-th operand (k counts from 1)."""
    return (instr // 10 ** (k + 1)) % 10

# ---------------------------------------------------------------------------
#  Faults
# ---------------------------------------------------------------------------

class IntcodeError(Exception):
    """Base for machine-generated faults."""
    pass

class ParseError(IntcodeError):
    def __init__(self, index: int, token: str, message: str = ""):
        self.index = index
        self.token = token
        super().__init__(message or
                         f"Token {index}: {token!r} is not a signed integer")

class DecodeError(IntcodeError):
    def __init__(self, ip: int, value: int, message: str = ""):
        self.ip = ip
        self.value = value
        super().__init__(message or
                         f"Unknown opcode {value % 100} (cell {value}) @ {ip}")

class InvalidWriteTarget(IntcodeError):
    def __init__(self, ip: int, operand: "Operand"):
        self.ip = ip
        self.operand = operand
        super().__init__(f"Immediate operand {operand} used as destination @ {ip}")

class InvalidAddress(IntcodeError):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Negative memory address {address}")

class OutOfRangeJump(IntcodeError):
    def __init__(self, ip: int, target: int):
        self.ip = ip
        self.target = target
        super().__init__(f"Jump to negative address {target} @ {ip}")

class NumericOverflow(IntcodeError):
    def __init__(self, value: int):
        self.value = value
        super().__init__(f"Value {value} does not fit in a signed 64-bit cell")

class InputExhausted(IntcodeError):
    pass

class HaltError(IntcodeError):
    pass

# ---------------------------------------------------------------------------
#  Instruction set
# ---------------------------------------------------------------------------

class Mode(enum.IntEnum):
    POSITION = 0
    IMMEDIATE = 1
    RELATIVE = 2


class Opcode(enum.IntEnum):
    ADD = 1     # a, b, dst     dst ← a + b
    MUL = 2     # a, b, dst     dst ← a * b
    IN = 3      # dst           dst ← input
    OUT = 4     # a             output ← a
    JT = 5      # cond, target  jump if cond ≠ 0
    JF = 6      # cond, target  jump if cond = 0
    LT = 7      # a, b, dst     dst ← a < b
    EQ = 8      # a, b, dst     dst ← a = b
    ARB = 9     # a             relative base += a
    HALT = 99

    @property
    def arity(self) -> int:
        return ARITY[self]


ARITY = {
    Opcode.ADD: 3, Opcode.MUL: 3, Opcode.IN: 1, Opcode.OUT: 1,
    Opcode.JT: 2, Opcode.JF: 2, Opcode.LT: 3, Opcode.EQ: 3,
    Opcode.ARB: 1, Opcode.HALT: 0,
}


class ISA(enum.IntEnum):
    """Instruction-set level.  Each level is a strict superset of the last."""
    ARITHMETIC = 1   # ADD, MUL, HALT; position mode only
    IO = 2           # + IN, OUT, jumps, comparisons; immediate mode
    RELATIVE = 3     # + ARB; relative mode


ISA_OPCODES = {
    ISA.ARITHMETIC: frozenset({Opcode.ADD, Opcode.MUL, Opcode.HALT}),
    ISA.IO: frozenset(set(Opcode) - {Opcode.ARB}),
    ISA.RELATIVE: frozenset(Opcode),
}

ISA_MODES = {
    ISA.ARITHMETIC: frozenset({Mode.POSITION}),
    ISA.IO: frozenset({Mode.POSITION, Mode.IMMEDIATE}),
    ISA.RELATIVE: frozenset(Mode),
}


@dataclass(frozen=True)
class Operand:
    mode: Mode
    value: int

    def __str__(self) -> str:
        if self.mode == Mode.IMMEDIATE:
            return str(self.value)
        if self.mode == Mode.RELATIVE:
            return f"[rb{self.value:+d}]"
        return f"[{self.value}]"


@dataclass(frozen=True)
class Instruction:
    opcode: Opcode
    operands: tuple[Operand, ...] = ()
    ip: int = 0
    raw: int = 0

    @property
    def size(self) -> int:
        return 1 + self.opcode.arity

    def __str__(self) -> str:
        if not self.operands:
            return self.opcode.name
        return f"{self.opcode.name} " + ", ".join(str(o) for o in self.operands)

# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

class Memory:
    """Zero-extending integer store.

    Reads past the end return 0 and leave the storage alone; a write past
    the end zero-fills up to the target address first.  The program image
    and anything written close behind it live in the dense ``cells`` list;
    writes more than ``SPARSE_GAP`` cells beyond its end go to the
    ``sparse`` dict instead, so far-away addresses cost one entry each.
    """

    SPARSE_GAP = 1 << 16

    def __init__(self, cells: Iterable[int] = (),
                 sparse: Optional[dict[int, int]] = None):
        self.cells: list[int] = list(cells)
        self.sparse: dict[int, int] = dict(sparse or {})

    def __len__(self) -> int:
        """Number of densely stored cells."""
        return len(self.cells)

    @property
    def size(self) -> int:
        """One past the highest address ever written."""
        if not self.sparse:
            return len(self.cells)
        return max(len(self.cells), max(self.sparse) + 1)

    def read(self, addr: int) -> int:
        if addr < 0:
            raise InvalidAddress(addr)
        if addr < len(self.cells):
            return self.cells[addr]
        return self.sparse.get(addr, 0)

    def write(self, addr: int, value: int):
        if addr < 0:
            raise InvalidAddress(addr)
        end = len(self.cells)
        if addr < end:
            self.cells[addr] = value
        elif addr - end <= self.SPARSE_GAP:
            self.cells.extend([0] * (addr + 1 - end))
            self._absorb_sparse()
            self.cells[addr] = value
        else:
            self.sparse[addr] = value

    def _absorb_sparse(self):
        # dense storage grew over addresses held in the sparse dict
        if not self.sparse:
            return
        for addr in [a for a in self.sparse if a < len(self.cells)]:
            self.cells[addr] = self.sparse.pop(addr)

    __getitem__ = read
    __setitem__ = write

    def snapshot(self) -> tuple[int, ...]:
        return tuple(self.cells)

    def sparse_snapshot(self) -> tuple[tuple[int, int], ...]:
        return tuple(sorted(self.sparse.items()))


# ---------------------------------------------------------------------------
#  Program text
# ---------------------------------------------------------------------------

def parse_program(text: str) -> list[int]:
    """Parse comma-separated signed decimal integers."""
    cells = []
    for i, tok in enumerate(text.strip().split(",")):
        tok = tok.strip()
        if not _INT_TOKEN.fullmatch(tok):
            raise ParseError(i, tok)
        value = int(tok)
        if not fits64(value):
            raise ParseError(i, tok, f"Token {i}: {tok} is outside the signed 64-bit range")
        cells.append(value)
    return cells

# ---------------------------------------------------------------------------
#  Decoder
# ---------------------------------------------------------------------------

def decode(memory: Memory, ip: int, isa: ISA = ISA.RELATIVE) -> Instruction:
    """Decode the instruction at *ip* without executing it."""
    raw = memory.read(ip)
    if raw < 0:
        raise DecodeError(ip, raw, f"Negative instruction cell {raw} @ {ip}")
    try:
        opcode = Opcode(raw % 100)
    except ValueError:
        raise DecodeError(ip, raw) from None
    if opcode not in ISA_OPCODES[isa]:
        raise DecodeError(ip, raw, f"Opcode {opcode.name} is not part of the "
                                   f"{isa.name} instruction set @ {ip}")

    operands = []
    for k in range(1, opcode.arity + 1):
        digit = mode_digit(raw, k)
        try:
            mode = Mode(digit)
        except ValueError:
            raise DecodeError(ip, raw, f"Unknown mode {digit} for operand {k} "
                                       f"(cell {raw}) @ {ip}") from None
        if mode not in ISA_MODES[isa]:
            raise DecodeError(ip, raw, f"Mode {mode.name} is not part of the "
                                       f"{isa.name} instruction set @ {ip}")
        operands.append(Operand(mode, memory.read(ip + k)))
    return Instruction(opcode, tuple(operands), ip, raw)

# ---------------------------------------------------------------------------
#  Machine
# ---------------------------------------------------------------------------

class Status(enum.Enum):
    RUNNING = "running"
    HALTED = "halted"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    status: Status
    steps: int
    error: Optional[IntcodeError] = None

    @property
    def halted(self) -> bool:
        return self.status is Status.HALTED

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED


@dataclass(frozen=True)
class MachineState:
    """Immutable copy of everything a machine needs to resume."""
    memory: tuple[int, ...]
    sparse_memory: tuple[tuple[int, int], ...] = ()
    ip: int = 0
    base: int = 0
    outputs: tuple[int, ...] = ()
    status: Status = Status.RUNNING
    error: Optional[IntcodeError] = None
    input_value: Optional[int] = 0          # None → queued input below
    pending_input: tuple[int, ...] = ()
    isa: ISA = ISA.RELATIVE
    overflow: str = OVERFLOW_RAISE
    steps: int = 0


class Intcode:
    """Intcode machine: one program, one memory, one pair of ports."""

    def __init__(self, program: str | Iterable[int], input_value: int = 0, *,
                 input_port: Optional[InputPort] = None,
                 isa: ISA = ISA.RELATIVE,
                 overflow: str = OVERFLOW_RAISE,
                 on_output: Optional[Callable[[int], None]] = None,
                 on_halt: Optional[Callable[[], None]] = None):
        if isinstance(program, str):
            program = parse_program(program)
        cells = list(program)
        for addr, value in enumerate(cells):
            if not fits64(value):
                raise ValueError(f"Cell {addr} holds {value}, outside the signed 64-bit range")
        if overflow not in OVERFLOW_POLICIES:
            raise ValueError(f"Unknown overflow policy {overflow!r}")
        if input_port is None:
            if not fits64(input_value):
                raise ValueError(f"Input value {input_value} is outside the signed 64-bit range")
            input_port = FixedInput(input_value)

        self.memory = Memory(cells)
        self.isa = ISA(isa)
        self.overflow = overflow

        # Registers
        self.ip: int = 0
        self.base: int = 0   # relative base

        # Ports
        self.input = input_port
        self.output = OutputPort(on_output)

        # State
        self.status = Status.RUNNING
        self.error: Optional[IntcodeError] = None
        self.steps: int = 0

        # Callbacks
        self.on_halt = on_halt

    # -- Parameters --

    def peek(self, addr: int) -> int:
        return self.memory.read(addr)

    def poke(self, addr: int, value: int):
        if not fits64(value):
            raise ValueError(f"Value {value} is outside the signed 64-bit range")
        self.memory.write(addr, value)

    def patch(self, cells: dict[int, int]):
        """Overwrite several addresses, e.g. ``{1: noun, 2: verb}``."""
        for addr, value in cells.items():
            self.poke(addr, value)

    # -- Results --

    @property
    def halted(self) -> bool:
        return self.status is Status.HALTED

    @property
    def result(self) -> int:
        """Cell 0 after a normal halt."""
        if self.status is not Status.HALTED:
            raise IntcodeError(f"No result: machine is {self.status.value}")
        return self.memory.read(0)

    @property
    def outputs(self) -> list[int]:
        return self.output.values

    @property
    def last_output(self) -> Optional[int]:
        return self.output.last

    # -- Operand resolution --

    def _address(self, op: Operand) -> int:
        if op.mode == Mode.RELATIVE:
            return self.base + op.value
        return op.value

    def load(self, op: Operand) -> int:
        if op.mode == Mode.IMMEDIATE:
            return op.value
        return self.memory.read(self._address(op))

    def store(self, op: Operand, value: int):
        if op.mode == Mode.IMMEDIATE:
            raise InvalidWriteTarget(self.ip, op)
        self.memory.write(self._address(op), value)

    def _checked(self, value: int) -> int:
        if fits64(value):
            return value
        if self.overflow == OVERFLOW_WRAP:
            return s64(value)
        raise NumericOverflow(value)

    def _jump_target(self, op: Operand) -> int:
        target = self.load(op)
        if target < 0:
            raise OutOfRangeJump(self.ip, target)
        return target

    # =====================================================================
    #  STEP: the core decode/execute loop
    # =====================================================================

    def step(self) -> Status:
        """Execute one instruction.  Returns the machine status afterwards.

        A fault moves the machine to FAILED and is kept on ``self.error``;
        the instruction pointer is left on the faulting instruction.
        """
        if self.status is not Status.RUNNING:
            raise HaltError(f"Machine is {self.status.value}")
        try:
            ins = decode(self.memory, self.ip, self.isa)
            log.debug("%6d  rb=%-6d %s", self.ip, self.base, ins)
            self._execute(ins)
        except IntcodeError as e:
            self.status = Status.FAILED
            self.error = e
            log.warning("Intcode fault @ %d: %s", self.ip, e)
        self.steps += 1
        return self.status

    def _execute(self, ins: Instruction):
        op = ins.opcode
        a = ins.operands
        next_ip = self.ip + ins.size

        if   op == Opcode.ADD:
            self.store(a[2], self._checked(self.load(a[0]) + self.load(a[1])))
        elif op == Opcode.MUL:
            self.store(a[2], self._checked(self.load(a[0]) * self.load(a[1])))
        elif op == Opcode.IN:
            # reject the destination before a queued value is consumed
            if a[0].mode == Mode.IMMEDIATE:
                raise InvalidWriteTarget(self.ip, a[0])
            if not self.input.has_data:
                raise InputExhausted(f"No input available @ {self.ip}")
            self.store(a[0], self._checked(self.input.read()))
        elif op == Opcode.OUT:
            self.output.write(self.load(a[0]))
        elif op == Opcode.JT:
            if self.load(a[0]) != 0:
                next_ip = self._jump_target(a[1])
        elif op == Opcode.JF:
            if self.load(a[0]) == 0:
                next_ip = self._jump_target(a[1])
        elif op == Opcode.LT:
            self.store(a[2], 1 if self.load(a[0]) < self.load(a[1]) else 0)
        elif op == Opcode.EQ:
            self.store(a[2], 1 if self.load(a[0]) == self.load(a[1]) else 0)
        elif op == Opcode.ARB:
            self.base = self._checked(self.base + self.load(a[0]))
        elif op == Opcode.HALT:
            self.status = Status.HALTED
            log.debug("Halted @ %d after %d steps", self.ip, self.steps + 1)
            if self.on_halt:
                self.on_halt()
            return

        self.ip = next_ip

    # -- Run loop --

    def run(self, max_steps: Optional[int] = None) -> RunResult:
        """Run until HALT or a fault.

        With *max_steps* set, also stop after that many instructions; the
        status is then still RUNNING and ``run()`` may be called again.
        """
        start = self.steps
        while self.status is Status.RUNNING:
            if max_steps is not None and self.steps - start >= max_steps:
                break
            self.step()
        return RunResult(self.status, self.steps - start, self.error)

    # -- Snapshots --

    def snapshot(self) -> MachineState:
        if isinstance(self.input, FixedInput):
            input_value, pending = self.input.value, ()
        elif isinstance(self.input, QueueInput):
            input_value, pending = None, self.input.pending
        else:
            raise TypeError(f"Cannot snapshot input port {self.input!r}")
        return MachineState(
            memory=self.memory.snapshot(),
            sparse_memory=self.memory.sparse_snapshot(),
            ip=self.ip,
            base=self.base,
            outputs=tuple(self.output.values),
            status=self.status,
            error=self.error,
            input_value=input_value,
            pending_input=pending,
            isa=self.isa,
            overflow=self.overflow,
            steps=self.steps,
        )

    @classmethod
    def from_state(cls, state: MachineState) -> Intcode:
        if state.input_value is not None:
            port: InputPort = FixedInput(state.input_value)
        else:
            port = QueueInput(state.pending_input)
        vm = cls(state.memory, input_port=port, isa=state.isa,
                 overflow=state.overflow)
        vm.memory.sparse.update(state.sparse_memory)
        vm.ip = state.ip
        vm.base = state.base
        vm.output.values.extend(state.outputs)
        vm.status = state.status
        vm.error = state.error
        vm.steps = state.steps
        return vm

# ---------------------------------------------------------------------------
#  Functional front-ends
# ---------------------------------------------------------------------------

def step(state: MachineState) -> MachineState:
    """Pure single step: the input state is left untouched."""
    vm = Intcode.from_state(state)
    vm.step()
    return vm.snapshot()


def run_program(program: str | Iterable[int], input_value: int = 0,
                max_steps: Optional[int] = None, **kwargs) -> Intcode:
    """Build a machine, run it, and hand it back for inspection."""
    vm = Intcode(program, input_value, **kwargs)
    vm.run(max_steps)
    return vm


def search_inputs(program: str | Iterable[int], target: int,
                  nouns: Iterable[int] = range(100),
                  verbs: Iterable[int] = range(100),
                  max_steps: Optional[int] = None,
                  **kwargs) -> Optional[tuple[int, int]]:
    """Find the (noun, verb) pair for cells 1 and 2 that leaves *target* in cell 0.

    Runs that fault, or that are still running after *max_steps*
    instructions, are skipped.  Returns None when no pair matches.
    """
    cells = parse_program(program) if isinstance(program, str) else list(program)
    verbs = list(verbs)
    for noun in nouns:
        for verb in verbs:
            vm = Intcode(cells, **kwargs)
            vm.patch({1: noun, 2: verb})
            if vm.run(max_steps).halted and vm.result == target:
                return noun, verb
    return None
