import sys
import unittest
from types import SimpleNamespace
from unittest import mock

import numpy as np

from click_synth import ClickBuffer
from config import AudioConfig
from output_graph import (
    AudioOutputGraph,
    Bus,
    UnsupportedPlatformError,
    detune_ratio,
    gain_ramp,
    resample_for_detune,
    smoothing_coefficient,
)


def make_graph(**kwargs) -> AudioOutputGraph:
    return AudioOutputGraph(AudioConfig(sample_rate=1000, block_size=100, master_gain=1.0), **kwargs)


class FakeStream:
    def __init__(self, fail_start=False):
        self.active = False
        self.fail_start = fail_start
        self.start_calls = 0
        self.closed = False

    def start(self):
        self.start_calls += 1
        if self.fail_start:
            raise RuntimeError("device busy")
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True


class TestDetune(unittest.TestCase):
    def test_ratio(self):
        self.assertAlmostEqual(detune_ratio(1200), 2.0)
        self.assertAlmostEqual(detune_ratio(-1200), 0.5)
        self.assertEqual(detune_ratio(0), 1.0)

    def test_resample_length_follows_pitch(self):
        samples = np.linspace(0.0, 1.0, 100, dtype=np.float32)
        self.assertEqual(resample_for_detune(samples, 0).size, 100)
        self.assertEqual(resample_for_detune(samples, 1200).size, 50)
        self.assertEqual(resample_for_detune(samples, -1200).size, 200)
        self.assertLess(resample_for_detune(samples, 100).size, 100)
        self.assertGreater(resample_for_detune(samples, -100).size, 100)


class TestGainRamp(unittest.TestCase):
    def test_approaches_target_with_time_constant(self):
        coeff = smoothing_coefficient(0.1, 1000)
        ramp = gain_ramp(0.0, 0.4, 100, coeff)
        # After one time constant ~63% of the step
        self.assertAlmostEqual(ramp[-1], 0.4 * (1 - np.exp(-1.0)), places=4)
        self.assertTrue(np.all(np.diff(ramp) >= 0))

    def test_zero_time_constant_jumps(self):
        ramp = gain_ramp(0.3, 0.1, 5, smoothing_coefficient(0.0, 1000))
        np.testing.assert_allclose(ramp, 0.1)


class TestAudioOutputGraph(unittest.TestCase):
    def test_voice_placed_sample_accurately(self):
        graph = make_graph()
        buf = ClickBuffer(1000, np.ones(10))
        graph.trigger(buf, Bus.MASTER, 0.0, at_time=0.05)

        block = graph.render_block(100)
        self.assertTrue(np.all(block[:50] == 0.0))
        np.testing.assert_allclose(block[50:60], 1.0)
        self.assertTrue(np.all(block[60:] == 0.0))
        self.assertAlmostEqual(graph.current_time, 0.1)

    def test_voice_spanning_blocks(self):
        graph = make_graph()
        graph.trigger(ClickBuffer(1000, np.ones(30)), Bus.MASTER, 0.0, at_time=0.09)
        first = graph.render_block(100)
        second = graph.render_block(100)
        self.assertEqual(int(np.count_nonzero(first)), 10)
        self.assertEqual(int(np.count_nonzero(second)), 20)
        np.testing.assert_allclose(second[:20], 1.0)

    def test_future_voice_waits(self):
        graph = make_graph()
        graph.trigger(ClickBuffer(1000, np.ones(5)), Bus.MASTER, 0.0, at_time=0.25)
        self.assertFalse(np.any(graph.render_block(100)))
        self.assertFalse(np.any(graph.render_block(100)))
        third = graph.render_block(100)
        np.testing.assert_allclose(third[50:55], 1.0)

    def test_late_voice_plays_immediately(self):
        graph = make_graph()
        graph.render_block(100)
        graph.trigger(ClickBuffer(1000, np.ones(5)), Bus.MASTER, 0.0, at_time=0.01)
        block = graph.render_block(100)
        np.testing.assert_allclose(block[:5], 1.0)

    def test_master_gain_and_clipping(self):
        graph = AudioOutputGraph(AudioConfig(sample_rate=1000, master_gain=0.8))
        buf = ClickBuffer(1000, np.full(4, 0.5))
        graph.trigger(buf, Bus.MASTER, 0.0, 0.0)
        np.testing.assert_allclose(graph.render_block(10)[:4], 0.4, rtol=1e-6)

        for _ in range(5):
            graph.trigger(ClickBuffer(1000, np.ones(4)), Bus.MASTER, 0.0, graph.current_time)
        self.assertLessEqual(float(np.max(graph.render_block(10))), 1.0)

    def test_undertone_bus_silent_until_level_set(self):
        graph = make_graph(gain_time_constant_s=0.0)
        graph.trigger(ClickBuffer(1000, np.ones(10)), Bus.UNDERTONE, 0.0, 0.0)
        self.assertFalse(np.any(graph.render_block(100)))

        graph.set_undertone_level(0.4)
        graph.trigger(ClickBuffer(1000, np.ones(10)), Bus.UNDERTONE, 0.0, graph.current_time)
        np.testing.assert_allclose(graph.render_block(100)[:10], 0.4, rtol=1e-6)

    def test_undertone_level_clamped(self):
        graph = make_graph()
        graph.set_undertone_level(3.0)
        self.assertEqual(graph.undertone_target, 0.4)
        graph.set_undertone_level(-1.0)
        self.assertEqual(graph.undertone_target, 0.0)
        self.assertEqual(make_graph(undertone_max=0.9).undertone_max, 0.4)

    def test_undertone_gain_smoothed(self):
        graph = make_graph(gain_time_constant_s=0.1)
        graph.set_undertone_level(0.4)
        graph.render_block(10)
        self.assertGreater(graph.undertone_gain, 0.0)
        self.assertLess(graph.undertone_gain, 0.1)
        for _ in range(20):
            graph.render_block(100)
        self.assertAlmostEqual(graph.undertone_gain, 0.4, places=3)

    def test_trigger_none_buffer_is_noop(self):
        graph = make_graph()
        graph.trigger(None, Bus.MASTER, 0.0, 0.0)
        self.assertFalse(np.any(graph.render_block(10)))

    def test_trigger_never_raises(self):
        graph = make_graph()
        bad = SimpleNamespace(samples=object())
        graph.trigger(bad, Bus.MASTER, 0.0, 0.0)
        self.assertEqual(graph.trigger_failures, 1)

    def test_full_queue_drops_voice(self):
        graph = AudioOutputGraph(AudioConfig(sample_rate=1000, voice_queue_size=2))
        buf = ClickBuffer(1000, np.ones(2))
        for _ in range(3):
            graph.trigger(buf, Bus.MASTER, 0.0, 0.0)
        self.assertEqual(graph.voices_dropped, 1)

    def test_audio_callback_fills_mono_output(self):
        graph = make_graph()
        graph.trigger(ClickBuffer(1000, np.ones(3)), Bus.MASTER, 0.0, 0.0)
        outdata = np.zeros((100, 1), dtype=np.float32)
        graph._audio_callback(outdata, 100, None, SimpleNamespace(output_underflow=True))
        np.testing.assert_allclose(outdata[:3, 0], 1.0)
        self.assertEqual(graph.underflow_count, 1)

    def test_open_without_sounddevice_raises_unsupported(self):
        graph = make_graph()
        with mock.patch.dict(sys.modules, {"sounddevice": None}):
            with self.assertRaises(UnsupportedPlatformError):
                graph.open()
        self.assertFalse(graph.is_open)
        self.assertTrue(graph.is_suspended)

    def test_open_builds_stream_with_callback(self):
        graph = make_graph()
        fake_sd = mock.MagicMock()
        with mock.patch.dict(sys.modules, {"sounddevice": fake_sd}):
            graph.open()
        _, kwargs = fake_sd.OutputStream.call_args
        self.assertEqual(kwargs["samplerate"], 1000)
        self.assertEqual(kwargs["channels"], 1)
        self.assertEqual(kwargs["callback"], graph._audio_callback)

    def test_resume_and_suspend(self):
        graph = make_graph()
        self.assertFalse(graph.resume())

        graph._stream = FakeStream()
        self.assertTrue(graph.is_suspended)
        self.assertTrue(graph.resume())
        self.assertFalse(graph.is_suspended)
        graph.suspend()
        self.assertTrue(graph.is_suspended)

    def test_resume_failure_reported(self):
        graph = make_graph()
        graph._stream = FakeStream(fail_start=True)
        self.assertFalse(graph.resume())
        self.assertTrue(graph.is_suspended)

    def test_close_releases_stream(self):
        graph = make_graph()
        stream = FakeStream()
        graph._stream = stream
        graph.close()
        self.assertTrue(stream.closed)
        self.assertFalse(graph.is_open)


if __name__ == "__main__":
    unittest.main()
