import base64
import struct
import unittest

import numpy as np

from voice_client.audio.codec import (
    WAV_HEADER_SIZE,
    FrequencyEnergyMeter,
    encode_utterance,
    float_to_pcm16,
    from_transport_text,
    to_transport_text,
    wrap_wav,
)


def pcm_values(pcm):
    return list(np.frombuffer(pcm, dtype="<i2"))


class TestFloatToPcm16(unittest.TestCase):
    def test_scaling_is_asymmetric(self):
        pcm = float_to_pcm16([0.0, 1.0, -1.0, 0.5], 16000)
        self.assertEqual(pcm_values(pcm), [0, 32767, -32768, 16384])

    def test_out_of_range_samples_are_clamped(self):
        pcm = float_to_pcm16(np.array([2.0, -3.0], dtype=np.float32), 16000)
        self.assertEqual(pcm_values(pcm), [32767, -32768])

    def test_resampling_by_index_ratio(self):
        samples = np.arange(6) / 10.0
        pcm = float_to_pcm16(samples, 48000, 16000)
        self.assertEqual(pcm_values(pcm), [0, 9830])

    def test_same_rate_keeps_length(self):
        pcm = float_to_pcm16(np.zeros(160), 16000, 16000)
        self.assertEqual(len(pcm), 320)

    def test_empty_input_raises(self):
        with self.assertRaises(ValueError):
            float_to_pcm16([], 16000)

    def test_too_short_to_resample_raises(self):
        with self.assertRaises(ValueError):
            float_to_pcm16([0.1], 48000, 16000)


class TestWrapWav(unittest.TestCase):
    def test_header_layout(self):
        pcm = float_to_pcm16(np.linspace(-1, 1, 100), 16000)
        wav = wrap_wav(pcm, 16000)

        self.assertEqual(len(wav), WAV_HEADER_SIZE + len(pcm))
        self.assertEqual(wav[0:4], b"RIFF")
        self.assertEqual(wav[8:12], b"WAVE")
        self.assertEqual(struct.unpack("<H", wav[22:24])[0], 1)  # mono
        self.assertEqual(struct.unpack("<I", wav[24:28])[0], 16000)
        self.assertEqual(struct.unpack("<H", wav[34:36])[0], 16)
        self.assertEqual(wav[36:40], b"data")
        self.assertEqual(struct.unpack("<I", wav[40:44])[0], len(pcm))
        self.assertEqual(wav[WAV_HEADER_SIZE:], pcm)

    def test_rejects_empty_and_partial_samples(self):
        with self.assertRaises(ValueError):
            wrap_wav(b"", 16000)
        with self.assertRaises(ValueError):
            wrap_wav(b"\x00\x01\x02", 16000)


class TestTransportText(unittest.TestCase):
    def test_encode_and_decode(self):
        self.assertEqual(to_transport_text(b"\x00\xff"), "AP8=")
        self.assertEqual(from_transport_text("AP8="), b"\x00\xff")

    def test_invalid_text_raises(self):
        with self.assertRaises(ValueError):
            from_transport_text("not base64!")
        with self.assertRaises(ValueError):
            from_transport_text("")
        with self.assertRaises(ValueError):
            to_transport_text(b"")

    def test_encode_utterance_is_wav_text(self):
        pcm = float_to_pcm16([0.1, 0.2, 0.3], 16000)
        wav = base64.b64decode(encode_utterance(pcm, 16000))
        self.assertEqual(wav[:4], b"RIFF")
        self.assertEqual(wav[WAV_HEADER_SIZE:], pcm)


class TestFrequencyEnergyMeter(unittest.TestCase):
    def test_silence_reads_zero(self):
        meter = FrequencyEnergyMeter()
        meter.update(np.zeros(4096))
        self.assertEqual(meter.read(), 0.0)

    def test_louder_input_reads_higher(self):
        rng = np.random.default_rng(7)
        quiet, loud = FrequencyEnergyMeter(), FrequencyEnergyMeter()
        quiet.update(rng.normal(0, 0.01, 2048))
        loud.update(rng.normal(0, 0.5, 2048))

        quiet_level = quiet.read()
        loud_level = loud.read()
        self.assertGreater(loud_level, quiet_level)
        self.assertLessEqual(loud_level, 255.0)

    def test_short_frames_accumulate(self):
        meter = FrequencyEnergyMeter(fft_size=256)
        for _ in range(4):
            meter.update(np.full(64, 0.5))
        self.assertGreater(meter.read(), 0.0)

    def test_reset_forgets_history(self):
        meter = FrequencyEnergyMeter()
        meter.update(np.sin(np.linspace(0, 400 * np.pi, 2048)) * 0.5)
        self.assertGreater(meter.read(), 0.0)

        meter.reset()
        self.assertEqual(meter.read(), 0.0)

    def test_invalid_parameters(self):
        with self.assertRaises(ValueError):
            FrequencyEnergyMeter(fft_size=1000)
        with self.assertRaises(ValueError):
            FrequencyEnergyMeter(smoothing=1.0)
        with self.assertRaises(ValueError):
            FrequencyEnergyMeter(min_db=-30, max_db=-100)


if __name__ == "__main__":
    unittest.main()
