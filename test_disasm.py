"""Disassembler and state-dump tests."""

import unittest
from unittest import mock

import disasm
from disasm import disasm_one, disassemble, dump_state, listing
from intcode import ISA, Intcode, Memory

QUINE = "109,1,204,-1,1001,100,1,100,1008,100,16,101,1006,101,0,99"


class TestDisassemble(unittest.TestCase):
    def test_code_then_data(self):
        self.assertEqual(disassemble("1,9,10,3,2,3,11,0,99,30,40,50"), [
            (0, "ADD [9], [10], [3]"),
            (4, "MUL [3], [11], [0]"),
            (8, "HALT"),
            (9, "DATA 30"),
            (10, "DATA 40"),
            (11, "DATA 50"),
        ])

    def test_all_modes(self):
        self.assertEqual(disassemble(QUINE), [
            (0, "ARB 1"),
            (2, "OUT [rb-1]"),
            (4, "ADD [100], 1, [100]"),
            (8, "EQ [100], 16, [101]"),
            (12, "JF [101], 0"),
            (15, "HALT"),
        ])

    def test_count_and_start(self):
        self.assertEqual(disassemble(QUINE, start=4, count=2), [
            (4, "ADD [100], 1, [100]"),
            (8, "EQ [100], 16, [101]"),
        ])

    def test_isa_level(self):
        text, size = disasm_one(Memory([109, 1]), 0, ISA.IO)
        self.assertEqual((text, size), ("DATA 109", 1))
        self.assertEqual(disasm_one(Memory([109, 1]), 0), ("ARB 1", 2))

    def test_accepts_cell_lists(self):
        self.assertEqual(disassemble([3, 0, 4, 0, 99]),
                         [(0, "IN [0]"), (2, "OUT [0]"), (4, "HALT")])


class TestListing(unittest.TestCase):
    def test_marker_and_raw_cells(self):
        text = listing("1,0,0,0,99", ip=4)
        lines = text.splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn("1,0,0,0", lines[0])
        self.assertIn("ADD [0], [0], [0]", lines[0])
        self.assertTrue(lines[1].lstrip().startswith(">>>"))
        self.assertIn("HALT", lines[1])

    def test_matches_disassembly(self):
        lines = listing(QUINE).splitlines()
        walked = disassemble(QUINE)
        self.assertEqual(len(lines), len(walked))
        for line, (addr, text) in zip(lines, walked):
            self.assertIn(f"{addr:6d}: ", line)
            self.assertTrue(line.endswith(text))
        self.assertIn("204,-1", lines[1])
        self.assertIn("1006,101,0", lines[4])

    def test_decodes_each_instruction_once(self):
        with mock.patch.object(disasm, "disasm_one",
                               wraps=disasm.disasm_one) as spy:
            listing(QUINE)
        self.assertEqual(spy.call_count, 6)


class TestDumpState(unittest.TestCase):
    def test_halted(self):
        vm = Intcode("104,7,99")
        vm.run()
        text = dump_state(vm)
        self.assertIn("STATUS = HALTED", text)
        self.assertIn("last=7", text)
        self.assertNotIn("ERROR", text)

    def test_counts_sparse_cells(self):
        vm = Intcode("1101,1,1,4611686018427387904,99")
        vm.run()
        self.assertIn("MEMORY = 5 cells, 1 sparse", dump_state(vm))

    def test_failed(self):
        vm = Intcode("0")
        vm.run()
        text = dump_state(vm)
        self.assertIn("STATUS = FAILED", text)
        self.assertIn("DecodeError", text)
        self.assertIn("OUTPUT = (none)", text)


if __name__ == "__main__":
    unittest.main()
