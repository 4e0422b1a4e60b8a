"""Tests for the live voice session and its playback cursor."""

import asyncio
import base64
import time

import pytest
from google.genai import types

from voice import (
    INPUT_MIME,
    PlaybackScheduler,
    VoiceSession,
    VoiceState,
    decode_audio_payload,
    extract_audio,
    pcm_duration,
)
from tests.fakes import FakeDevices, FakeLive, LiveClient

# 0.05 s of 16-bit mono audio at 24 kHz
REPLY_PCM = b"\x01\x00" * 1200


def audio_message(pcm=REPLY_PCM):
    return types.LiveServerMessage(server_content=types.LiveServerContent(
        model_turn=types.Content(role="model", parts=[
            types.Part(inline_data=types.Blob(data=pcm, mime_type="audio/pcm;rate=24000")),
        ])
    ))


class ManualClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def make_session(live, devices=None):
    devices = devices or FakeDevices()
    session = VoiceSession(LiveClient(live), model="voice-test", voice_name="Zephyr",
                           devices_factory=lambda: devices)
    return session, devices


async def eventually(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestPlaybackScheduler:
    """Gapless, non-overlapping reply playback."""

    def test_chunks_follow_each_other(self):
        clock = ManualClock(10.0)
        scheduler = PlaybackScheduler(clock)
        first = scheduler.schedule(REPLY_PCM)
        second = scheduler.schedule(REPLY_PCM)
        assert first.start == 10.0
        assert second.start == pytest.approx(first.end)
        assert first.duration == pytest.approx(0.05)

    def test_never_starts_in_the_past(self):
        clock = ManualClock(1.0)
        scheduler = PlaybackScheduler(clock)
        scheduler.schedule(REPLY_PCM)
        clock.now = 5.0
        late = scheduler.schedule(REPLY_PCM)
        assert late.start == 5.0

    def test_stop_all_resets_cursor(self):
        clock = ManualClock(3.0)
        scheduler = PlaybackScheduler(clock)
        scheduler.schedule(REPLY_PCM)
        scheduler.schedule(REPLY_PCM)
        assert scheduler.stop_all() == 2
        assert scheduler.active == set()
        assert scheduler.next_start == 0.0
        assert scheduler.schedule(REPLY_PCM).start == 3.0

    def test_finished_chunks_leave_active_set(self):
        scheduler = PlaybackScheduler(ManualClock())
        chunk = scheduler.schedule(REPLY_PCM)
        scheduler.finished(chunk)
        assert scheduler.active == set()


class TestAudioPayloads:
    def test_base64_payload_is_decoded(self):
        assert decode_audio_payload(base64.b64encode(b"\x01\x02\x03\x04").decode()) == b"\x01\x02\x03\x04"

    def test_odd_byte_is_dropped(self):
        assert decode_audio_payload(b"\x01\x02\x03") == b"\x01\x02"

    def test_message_parts_are_joined(self):
        message = types.LiveServerMessage(server_content=types.LiveServerContent(
            model_turn=types.Content(role="model", parts=[
                types.Part(inline_data=types.Blob(data=b"\x01\x00", mime_type="audio/pcm")),
                types.Part(text="transcript"),
                types.Part(inline_data=types.Blob(data=b"\x02\x00", mime_type="audio/pcm")),
            ])
        ))
        assert extract_audio(message) == b"\x01\x00\x02\x00"

    def test_message_without_turn(self):
        assert extract_audio(types.LiveServerMessage()) == b""

    def test_duration(self):
        assert pcm_duration(b"\x00" * 32000, 16000) == 1.0


class TestVoiceSession:
    """Opening, streaming and closing the live channel."""

    def test_live_config_uses_voice(self):
        session, _ = make_session(FakeLive())
        cfg = session.live_config()
        assert cfg.speech_config.voice_config.prebuilt_voice_config.voice_name == "Zephyr"
        assert cfg.system_instruction

    def test_toggle_opens_then_closes(self):
        live = FakeLive()
        session, devices = make_session(live)

        async def scenario():
            assert await session.toggle() is VoiceState.CONNECTING
            await eventually(lambda: session.state is VoiceState.OPEN)
            await eventually(lambda: live.sessions[0].sent)
            assert await session.toggle() is VoiceState.CLOSED

        asyncio.run(scenario())
        assert len(live.connects) == 1
        assert live.connects[0][0] == "voice-test"
        assert devices.closed
        assert live.sessions[0].sent[0].mime_type == INPUT_MIME

    def test_toggle_while_connecting_closes(self):
        live = FakeLive()
        session, _ = make_session(live)

        async def scenario():
            await session.toggle()
            return await session.toggle()

        assert asyncio.run(scenario()) is VoiceState.CLOSED
        assert live.connects == []

    def test_open_twice_is_rejected(self):
        session, _ = make_session(FakeLive())

        async def scenario():
            session.open()
            try:
                with pytest.raises(RuntimeError):
                    session.open()
            finally:
                await session.close()

        asyncio.run(scenario())

    def test_replies_are_played(self):
        live = FakeLive(turns=[[audio_message(), audio_message()]])
        session, devices = make_session(live)

        async def scenario():
            session.open()
            await eventually(lambda: len(devices.speaker.written) == 2)
            await session.close()

        asyncio.run(scenario())
        assert devices.speaker.written == [REPLY_PCM, REPLY_PCM]
        assert session.to_json() == {"state": "closed", "error": None, "pending": 0}

    def test_service_closing_the_channel_tears_down(self):
        live = FakeLive(keep_open=False)
        session, devices = make_session(live)

        async def scenario():
            session.open()
            await eventually(lambda: session.state is VoiceState.CLOSED)

        asyncio.run(scenario())
        assert devices.closed
        assert session.error is None

    def test_connect_failure_is_reported(self):
        live = FakeLive(error=ConnectionError("handshake refused"))
        session, devices = make_session(live)

        async def scenario():
            session.open()
            await eventually(lambda: session.state is VoiceState.CLOSED)

        asyncio.run(scenario())
        assert session.error == "handshake refused"
        assert devices.closed

    def test_toggle_during_slow_device_open_releases_devices(self):
        opened = []

        def slow_devices():
            time.sleep(0.2)
            devices = FakeDevices()
            opened.append(devices)
            return devices

        live = FakeLive()
        session = VoiceSession(LiveClient(live), model="voice-test", devices_factory=slow_devices)

        async def scenario():
            await session.toggle()
            await asyncio.sleep(0.05)
            return await session.toggle()

        assert asyncio.run(scenario()) is VoiceState.CLOSED
        assert len(opened) == 1
        assert opened[0].closed
        assert live.connects == []
