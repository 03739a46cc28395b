import io

import numpy as np
import pytest
import soundfile as sf

from voicepool import recorder
from voicepool.errors import MicrophonePermissionError
from voicepool.recorder import (
    AudioBlob,
    CaptureSettings,
    SoundDeviceCapture,
    SoundDeviceMicrophone,
    decode_data_uri,
    encode_data_uri,
    suppress_noise,
)


def test_blob_encodes_as_base64_data_uri():
    uri = AudioBlob(b"hello", "audio/wav").to_data_uri()
    assert uri == "data:audio/wav;base64,aGVsbG8="


def test_decode_data_uri_accepts_extra_parameters():
    mime_type, payload = decode_data_uri("data:audio/webm;codecs=opus;base64,aGVsbG8=")
    assert mime_type == "audio/webm"
    assert payload == b"hello"


def test_decode_data_uri_round_trips_binary_payload():
    data = bytes(range(256))
    assert decode_data_uri(encode_data_uri(data, "audio/ogg")) == ("audio/ogg", data)


@pytest.mark.parametrize(
    "uri",
    ["hello", "data:audio/wav,plain", "data:audio/wav;base64,***"],
)
def test_decode_data_uri_rejects_malformed_input(uri):
    with pytest.raises(ValueError):
        decode_data_uri(uri)


def test_suppress_noise_attenuates_quiet_frames():
    rate = 1000
    quiet = (0.001 * (-1.0) ** np.arange(200)).astype(np.float32)[:, None]
    loud = (np.sin(np.arange(200) / 3.0) * 0.5).astype(np.float32)[:, None]
    audio = np.concatenate([quiet, loud, quiet], axis=0).astype(np.float32)

    cleaned = suppress_noise(audio, rate)

    assert cleaned.shape == audio.shape
    centred = audio - audio.mean(axis=0)
    assert np.allclose(cleaned[:200], centred[:200] * 0.1)
    assert np.allclose(cleaned[200:400], centred[200:400])


def test_suppress_noise_leaves_very_short_clips_alone():
    audio = np.ones((5, 1), dtype=np.float32)
    assert suppress_noise(audio, 16000).shape == (5, 1)


class FakeStream:
    def __init__(self, samplerate, channels, dtype, callback):
        self.samplerate = samplerate
        self.channels = channels
        self.dtype = dtype
        self.callback = callback
        self.started = 0
        self.stopped = 0
        self.closed = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def close(self):
        self.closed += 1


class FakeSoundDevice:
    class PortAudioError(Exception):
        pass

    def __init__(self, error=None):
        self.error = error
        self.streams = []

    def query_devices(self, kind=None):
        if self.error is not None:
            raise self.error
        return {"name": "Test Mic"}

    def InputStream(self, **kwargs):
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


def _capture(noise_suppression=False):
    sd = FakeSoundDevice()
    settings = CaptureSettings(sample_rate=8000, noise_suppression=noise_suppression)
    return SoundDeviceCapture(sd, settings), sd.streams[0]


def test_stream_is_opened_with_capture_settings():
    capture, stream = _capture()

    assert stream.samplerate == 8000
    assert stream.channels == 1
    assert stream.dtype == "float32"
    assert capture.recording is False


def test_stop_without_captured_frames_returns_none():
    capture, stream = _capture()

    capture.start()
    assert capture.stop() is None
    assert stream.stopped == 1


def test_stop_writes_captured_frames_as_wav():
    capture, stream = _capture()
    frames = np.full((400, 1), 0.25, dtype=np.float32)

    capture.start()
    stream.callback(frames, len(frames), None, None)
    stream.callback(frames, len(frames), None, None)
    blob = capture.stop()

    assert blob.mime_type == "audio/wav"
    audio, rate = sf.read(io.BytesIO(blob.data), dtype="float32")
    assert rate == 8000
    assert len(audio) == 800
    assert capture.recording is False


def test_stop_applies_noise_suppression_when_enabled(monkeypatch):
    calls = []

    def fake_suppress(audio, sample_rate):
        calls.append((audio.shape, sample_rate))
        return audio

    monkeypatch.setattr(recorder, "suppress_noise", fake_suppress)
    capture, stream = _capture(noise_suppression=True)

    capture.start()
    stream.callback(np.zeros((160, 1), dtype=np.float32), 160, None, None)
    capture.stop()

    assert calls == [((160, 1), 8000)]


def test_release_is_idempotent_and_closes_stream():
    capture, stream = _capture()

    capture.start()
    capture.stop()
    capture.release()
    capture.release()

    assert stream.closed == 1
    assert stream.stopped == 1


def test_release_while_recording_stops_stream():
    capture, stream = _capture()

    capture.start()
    capture.release()

    assert stream.stopped == 1
    assert stream.closed == 1
    assert capture.recording is False
    with pytest.raises(RuntimeError):
        capture.start()


def test_microphone_returns_capture_handle():
    sd = FakeSoundDevice()

    handle = SoundDeviceMicrophone(sd).acquire(CaptureSettings())

    assert isinstance(handle, SoundDeviceCapture)
    assert len(sd.streams) == 1


@pytest.mark.parametrize("error", [FakeSoundDevice.PortAudioError("denied"), ValueError("no input device")])
def test_microphone_errors_become_permission_errors(error):
    sd = FakeSoundDevice(error=error)

    with pytest.raises(MicrophonePermissionError) as excinfo:
        SoundDeviceMicrophone(sd).acquire(CaptureSettings())

    assert excinfo.value.__cause__ is error
    assert sd.streams == []
