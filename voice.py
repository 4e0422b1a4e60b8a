"""Spoken consultation over the Gemini Live API.

Two channels run side by side once the session is open: microphone chunks
go out as 16 kHz PCM, and audio replies come back as 24 kHz PCM. Replies
are placed on one playback cursor so each chunk starts exactly where the
previous one ends, and never in the past.
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from enum import Enum

from google.genai import types
from google.genai.types import Modality

import config
from system_prompt import VOICE_PROMPT

logger = logging.getLogger(__name__)

INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000
CHUNK_FRAMES = 4096
SAMPLE_WIDTH = 2
INPUT_MIME = f"audio/pcm;rate={INPUT_SAMPLE_RATE}"


def pcm_duration(pcm, sample_rate=OUTPUT_SAMPLE_RATE):
    return (len(pcm) // SAMPLE_WIDTH) / sample_rate


def encode_audio_chunk(pcm):
    return types.Blob(data=pcm, mime_type=INPUT_MIME)


def decode_audio_payload(data):
    if isinstance(data, str):
        data = base64.b64decode(data)
    # a trailing half sample cannot be played
    return data[: len(data) - len(data) % SAMPLE_WIDTH]


def extract_audio(message):
    content = message.server_content
    if content is None or content.model_turn is None or not content.model_turn.parts:
        return b""
    return b"".join(
        decode_audio_payload(part.inline_data.data)
        for part in content.model_turn.parts
        if part.inline_data and part.inline_data.data
    )


@dataclass(eq=False)
class ScheduledChunk:
    pcm: bytes
    start: float
    duration: float

    @property
    def end(self):
        return self.start + self.duration


class PlaybackScheduler:
    def __init__(self, clock=time.monotonic, sample_rate=OUTPUT_SAMPLE_RATE):
        self.clock = clock
        self.sample_rate = sample_rate
        self.next_start = 0.0
        self.active = set()

    def schedule(self, pcm):
        start = max(self.next_start, self.clock())
        chunk = ScheduledChunk(pcm, start, pcm_duration(pcm, self.sample_rate))
        self.next_start = chunk.end
        self.active.add(chunk)
        return chunk

    def finished(self, chunk):
        self.active.discard(chunk)

    def stop_all(self):
        dropped = len(self.active)
        self.active.clear()
        self.next_start = 0.0
        return dropped


class VoiceState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


def open_default_devices():
    from audio_io import AudioDevices
    return AudioDevices(INPUT_SAMPLE_RATE, OUTPUT_SAMPLE_RATE, CHUNK_FRAMES)


class VoiceSession:
    """At most one live session; opening while busy closes instead."""

    def __init__(self, client, model=None, voice_name=None, devices_factory=None, clock=time.monotonic):
        self.client = client
        self.model = model or config.VOICE_MODEL
        self.voice_name = voice_name or config.VOICE_NAME
        self.devices_factory = devices_factory or open_default_devices
        self.clock = clock
        self.scheduler = PlaybackScheduler(clock)
        self.state = VoiceState.CLOSED
        self.error = None
        self._task = None
        self._devices = None
        self._playback = None

    def live_config(self):
        return types.LiveConnectConfig(
            response_modalities=[Modality.AUDIO],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.voice_name)
                )
            ),
            system_instruction=VOICE_PROMPT,
        )

    async def toggle(self):
        if self.state is VoiceState.CLOSED:
            self.open()
        else:
            await self.close()
        return self.state

    def open(self):
        if self.state is not VoiceState.CLOSED:
            raise RuntimeError(f"Voice session already {self.state.value}")
        self.state = VoiceState.CONNECTING
        self.error = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def close(self):
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._teardown()

    async def _run(self):
        try:
            self._devices = await self._open_devices()
            async with self.client.aio.live.connect(model=self.model, config=self.live_config()) as session:
                self.state = VoiceState.OPEN
                self._playback = asyncio.Queue()
                logger.info("Voice session open (%s, voice %s)", self.model, self.voice_name)
                await self._serve(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Voice session failed")
            self.error = str(e)
        finally:
            self._teardown()

    async def _open_devices(self):
        opening = asyncio.ensure_future(asyncio.to_thread(self.devices_factory))
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            # the worker thread still finishes opening; release what it returns
            (devices,) = await asyncio.gather(opening, return_exceptions=True)
            if not isinstance(devices, BaseException):
                devices.close()
            raise

    async def _serve(self, session):
        tasks = [
            asyncio.create_task(self._stream_microphone(session)),
            asyncio.create_task(self._receive(session)),
            asyncio.create_task(self._play()),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _stream_microphone(self, session):
        microphone = self._devices.microphone
        while True:
            pcm = await asyncio.to_thread(microphone.read)
            await session.send_realtime_input(audio=encode_audio_chunk(pcm))

    async def _receive(self, session):
        while True:
            received = False
            async for message in session.receive():
                received = True
                pcm = extract_audio(message)
                if pcm:
                    self._playback.put_nowait(self.scheduler.schedule(pcm))
            if not received:
                logger.info("Voice channel closed by the service")
                return

    async def _play(self):
        speaker = self._devices.speaker
        while True:
            chunk = await self._playback.get()
            delay = chunk.start - self.clock()
            if delay > 0:
                await asyncio.sleep(delay)
            await asyncio.to_thread(speaker.write, chunk.pcm)
            self.scheduler.finished(chunk)

    def _teardown(self):
        if self._devices is not None:
            self._devices.close()
            self._devices = None
        dropped = self.scheduler.stop_all()
        if dropped:
            logger.debug("Discarded %d pending playback chunks", dropped)
        self._playback = None
        self.state = VoiceState.CLOSED

    def to_json(self):
        return {
            "state": self.state.value,
            "error": self.error,
            "pending": len(self.scheduler.active),
        }
