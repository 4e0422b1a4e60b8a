import logging

import pyaudio

logger = logging.getLogger(__name__)

FORMAT = pyaudio.paInt16
CHANNELS = 1


class Microphone:
    def __init__(self, pa, rate, chunk_frames):
        self.chunk_frames = chunk_frames
        self.stream = pa.open(
            format=FORMAT,
            channels=CHANNELS,
            rate=rate,
            input=True,
            frames_per_buffer=chunk_frames,
        )

    def read(self):
        return self.stream.read(self.chunk_frames, exception_on_overflow=False)

    def close(self):
        self.stream.stop_stream()
        self.stream.close()


class Speaker:
    def __init__(self, pa, rate):
        self.stream = pa.open(format=FORMAT, channels=CHANNELS, rate=rate, output=True)

    def write(self, pcm):
        self.stream.write(pcm)

    def close(self):
        # stop_stream drops whatever is still buffered
        self.stream.stop_stream()
        self.stream.close()


class AudioDevices:
    """Microphone input and speaker output for one voice session."""

    def __init__(self, input_rate, output_rate, chunk_frames):
        self.pa = pyaudio.PyAudio()
        try:
            self.microphone = Microphone(self.pa, input_rate, chunk_frames)
            self.speaker = Speaker(self.pa, output_rate)
        except Exception:
            self.pa.terminate()
            raise

    def close(self):
        for device in (self.microphone, self.speaker):
            try:
                device.close()
            except OSError as e:
                logger.warning("Closing audio device failed: %s", e)
        self.pa.terminate()
