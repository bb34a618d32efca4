"""
Audio module for capture, voice activity detection and payload encoding.

Key components:
- codec: Pure conversions between float samples, PCM16, WAV and base64
  transport text, plus the frequency-domain energy meter.
- vad: VoiceActivityDetector, the silence/speaking state machine that turns a
  frame stream into bounded utterance chunks and speech start/stop events.
- capture: The CaptureDevice contract and VoicePipeline, which pumps device
  frames into the detector and polls it on a fixed interval.
- microphone: PyAudioMicrophone, a CaptureDevice over PortAudio (imported
  explicitly; needs the optional ``audio`` extra).

Usage examples:
```python
from voice_client.audio.capture import VoicePipeline
from voice_client.audio.microphone import PyAudioMicrophone
from voice_client.audio.vad import VoiceActivityDetector

detector = VoiceActivityDetector(on_chunk=client.send_audio_chunk)
pipeline = VoicePipeline(PyAudioMicrophone(), detector)
await pipeline.start()
```
"""

# Audio module initialization
