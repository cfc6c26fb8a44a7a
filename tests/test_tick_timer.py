import unittest

from PyQt6.QtCore import QCoreApplication

from tick_timer import QtTickTimer


class TestQtTickTimer(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication([])

    def test_start_stop(self):
        calls = []
        timer = QtTickTimer(25, lambda: calls.append(1))
        self.assertEqual(timer.interval_ms, 25)
        self.assertFalse(timer.is_active())

        timer.start()
        self.assertTrue(timer.is_active())
        timer.start()  # already running: no restart
        self.assertTrue(timer.is_active())

        timer.stop()
        self.assertFalse(timer.is_active())

    def test_interval_floor(self):
        timer = QtTickTimer(0, lambda: None)
        self.assertEqual(timer.interval_ms, 1)

    def test_timeout_invokes_callback(self):
        calls = []
        timer = QtTickTimer(25, lambda: calls.append(1))
        timer._on_timeout()
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
