"""
Tests for VoicePipeline: the poll timer, the frame pump and device failures.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from conftest import FakeCaptureDevice, ManualScheduler, settle
from voice_client.audio.capture import VoicePipeline
from voice_client.audio.codec import FrequencyEnergyMeter
from voice_client.audio.vad import VoiceActivityDetector
from voice_client.errors import DeviceError, ErrorCode


class Recorder:
    def __init__(self):
        self.chunks = []
        self.speech = []
        self.errors = []


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def device():
    return FakeCaptureDevice()


@pytest.fixture
def meter():
    meter = MagicMock(spec=FrequencyEnergyMeter)
    meter.read.return_value = 0.0
    return meter


def make_pipeline(device, recorder, meter, mode="client_vad", scheduler=None):
    detector = VoiceActivityDetector(
        on_chunk=recorder.chunks.append,
        on_speech_change=recorder.speech.append,
        mode=mode,
    )
    return VoicePipeline(
        device,
        detector,
        scheduler=scheduler or ManualScheduler(),
        meter=meter,
        on_error=recorder.errors.append,
    )


@pytest.mark.asyncio
async def test_start_opens_device_and_polls(device, recorder, meter):
    scheduler = ManualScheduler()
    pipeline = make_pipeline(device, recorder, meter, scheduler=scheduler)

    await pipeline.start()
    assert pipeline.running
    assert device.started_with == 16000

    meter.read.return_value = 7.0
    scheduler.advance(0.1)
    assert meter.read.call_count == 1
    assert pipeline.detector.baseline == 7.0

    scheduler.advance(0.2)
    assert meter.read.call_count == 3

    await pipeline.stop()


@pytest.mark.asyncio
async def test_frames_feed_meter_and_detector(device, recorder, meter):
    pipeline = make_pipeline(device, recorder, meter, mode="server_vad")
    await pipeline.start()

    samples = np.full(160, 0.1, dtype=np.float32)
    device.push(samples)
    await settle()

    meter.update.assert_called_once_with(samples)
    assert pipeline.detector.buffered_bytes == 320

    await pipeline.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent(device, recorder, meter):
    pipeline = make_pipeline(device, recorder, meter)
    await pipeline.start()
    await pipeline.start()

    assert device.started_with == 16000
    await pipeline.stop()


@pytest.mark.asyncio
async def test_stop_closes_open_utterance(device, recorder, meter):
    scheduler = ManualScheduler()
    pipeline = make_pipeline(device, recorder, meter, scheduler=scheduler)
    await pipeline.start()

    pipeline.detector.poll(1.0)
    pipeline.detector.poll(50.0)
    device.push(np.full(160, 0.3, dtype=np.float32))
    await settle()

    await pipeline.stop()

    assert not pipeline.running
    assert device.stopped
    assert len(recorder.chunks) == 1
    assert recorder.speech == [True, False]
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_stream_end_stops_pipeline(device, recorder, meter):
    pipeline = make_pipeline(device, recorder, meter)
    await pipeline.start()

    device.push(None)
    await settle()

    assert not pipeline.running
    assert device.stopped
    assert recorder.errors == []


@pytest.mark.asyncio
async def test_device_failure_reports_once(device, recorder, meter):
    pipeline = make_pipeline(device, recorder, meter)
    await pipeline.start()
    pipeline.detector.poll(1.0)
    pipeline.detector.poll(50.0)

    device.push(OSError("Input overflowed"))
    await settle()

    assert not pipeline.running
    assert device.stopped
    assert len(recorder.errors) == 1
    error = recorder.errors[0]
    assert isinstance(error, DeviceError)
    assert error.code == ErrorCode.DEVICE_ERROR
    assert isinstance(error.cause, OSError)
    assert recorder.chunks == []

    await pipeline.stop()
    assert len(recorder.errors) == 1


@pytest.mark.asyncio
async def test_start_failure_raises_device_error(recorder, meter):
    device = FakeCaptureDevice(start_error=OSError("Invalid sample rate"))
    pipeline = make_pipeline(device, recorder, meter)

    with pytest.raises(DeviceError) as exc_info:
        await pipeline.start()

    assert "Invalid sample rate" in exc_info.value.message
    assert recorder.errors == [exc_info.value]
    assert not pipeline.running
