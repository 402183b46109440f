"""Device-level tests for the Intcode I/O ports."""

import unittest

from ports import FixedInput, OutputPort, QueueInput


class TestFixedInput(unittest.TestCase):
    def test_same_value_forever(self):
        port = FixedInput(5)
        self.assertEqual([port.read() for _ in range(3)], [5, 5, 5])
        self.assertTrue(port.has_data)
        self.assertEqual(port.reads, 3)


class TestQueueInput(unittest.TestCase):
    def test_fifo(self):
        port = QueueInput([1, 2])
        port.inject(3, 4)
        self.assertEqual(port.pending, (1, 2, 3, 4))
        self.assertEqual([port.read() for _ in range(4)], [1, 2, 3, 4])

    def test_empty(self):
        port = QueueInput()
        self.assertFalse(port.has_data)
        with self.assertRaises(IndexError):
            port.read()
        port.inject(9)
        self.assertTrue(port.has_data)
        self.assertEqual(port.read(), 9)
        self.assertFalse(port.has_data)


class TestOutputPort(unittest.TestCase):
    def test_callback(self):
        out = []
        port = OutputPort(on_output=out.append)
        port.write(1)
        port.write(-2)
        self.assertEqual(out, [1, -2])
        self.assertEqual(port.last, -2)
        self.assertEqual(len(port), 2)

    def test_last_when_empty(self):
        self.assertIsNone(OutputPort().last)

    def test_drain_keeps_history(self):
        port = OutputPort()
        port.write(1)
        port.write(2)
        self.assertEqual(port.drain(), [1, 2])
        self.assertEqual(port.drain(), [])
        port.write(3)
        self.assertEqual(port.drain(), [3])
        self.assertEqual(port.values, [1, 2, 3])


if __name__ == "__main__":
    unittest.main()
