"""
Intcode Disassembler
====================
Turns memory back into readable instructions, for debugging programs and
inspecting a stopped machine.

Operand syntax:
  [n]       position mode:  the cell at address n
  n         immediate mode: the literal n
  [rb+n]    relative mode:  the cell at relative base + n

Cells that do not decode under the chosen instruction set are shown as
``DATA n`` and consume one cell.
"""

from __future__ import annotations
from typing import Iterable, Iterator, Optional

from intcode import ISA, DecodeError, Intcode, Memory, decode, parse_program


def _as_memory(program: str | Iterable[int] | Memory) -> Memory:
    if isinstance(program, Memory):
        return program
    if isinstance(program, str):
        return Memory(parse_program(program))
    return Memory(program)


def disasm_one(memory: Memory, addr: int,
               isa: ISA = ISA.RELATIVE) -> tuple[str, int]:
    """Disassemble one instruction at `addr`. Returns (text, cell_count)."""
    try:
        ins = decode(memory, addr, isa)
    except DecodeError:
        return f"DATA {memory.read(addr)}", 1
    return str(ins), ins.size


def _walk(memory: Memory, start: int, count: Optional[int],
          isa: ISA) -> Iterator[tuple[int, str, int]]:
    """Yield (addr, text, size) over the densely stored cells."""
    addr = start
    seen = 0
    while addr < len(memory) and (count is None or seen < count):
        text, size = disasm_one(memory, addr, isa)
        yield addr, text, size
        addr += size
        seen += 1


def disassemble(program: str | Iterable[int] | Memory, start: int = 0,
                count: Optional[int] = None,
                isa: ISA = ISA.RELATIVE) -> list[tuple[int, str]]:
    """Walk memory from *start* to its end (or *count* instructions)."""
    memory = _as_memory(program)
    return [(addr, text) for addr, text, _ in _walk(memory, start, count, isa)]


def listing(program: str | Iterable[int] | Memory, start: int = 0,
            count: Optional[int] = None, isa: ISA = ISA.RELATIVE,
            ip: Optional[int] = None) -> str:
    """Address, raw cells and mnemonic per line; ``>>>`` marks *ip*."""
    memory = _as_memory(program)
    lines = []
    for addr, text, size in _walk(memory, start, count, isa):
        raw = ",".join(str(memory.read(addr + i)) for i in range(size))
        marker = ">>>" if addr == ip else "   "
        lines.append(f"  {marker} {addr:6d}: {raw:<32s} {text}")
    return "\n".join(lines)


def dump_state(vm: Intcode) -> str:
    lines = [
        f"  IP     = {vm.ip}",
        f"  RB     = {vm.base}",
        f"  STATUS = {vm.status.value.upper()}  ({vm.steps} steps, {vm.isa.name})",
        f"  MEMORY = {len(vm.memory)} cells, {len(vm.memory.sparse)} sparse",
    ]
    if vm.outputs:
        lines.append(f"  OUTPUT = {len(vm.outputs)} values, last={vm.last_output}")
    else:
        lines.append("  OUTPUT = (none)")
    if vm.error is not None:
        lines.append(f"  ERROR  = {type(vm.error).__name__}: {vm.error}")
    return "\n".join(lines)
