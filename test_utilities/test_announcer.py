"""Test the announcers without playing audio."""
import sys
import io
from pathlib import Path

# Fix Windows console encoding (only if not already wrapped)
if sys.platform == 'win32':
    if not isinstance(sys.stdout, io.TextIOWrapper) or (hasattr(sys.stdout, 'encoding') and sys.stdout.encoding != 'utf-8'):
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    if not isinstance(sys.stderr, io.TextIOWrapper) or (hasattr(sys.stderr, 'encoding') and sys.stderr.encoding != 'utf-8'):
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add project root, src and test_utilities to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(Path(__file__).parent))

import subprocess
import tempfile
import wave
from unittest import mock

import pygame

from announcer import RecordingAnnouncer, SpeechAnnouncer, render_tone


def test_recording_announcer():
    announcer = RecordingAnnouncer()
    announcer.announce("Kutum spawns in 5 minutes")
    assert announcer.messages == ["Kutum spawns in 5 minutes"]

    failing = RecordingAnnouncer(fail=True)
    try:
        failing.announce("x")
        assert False, "expected RuntimeError"
    except RuntimeError:
        pass
    assert failing.messages == []
    print("[OK] Recording announcer keeps messages and can simulate failure")


def test_render_tone():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = render_tone(Path(tmpdir) / "sounds" / "alert_tone.wav")
        assert path is not None and path.exists()
        with wave.open(str(path), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getnframes() > 0
    print("[OK] Fallback tone renders as a mono 16-bit WAV")


def test_speech_falls_back_to_tone():
    announcer = SpeechAnnouncer(voice="en-us")
    with mock.patch("announcer.shutil.which", return_value=None), \
            mock.patch.object(SpeechAnnouncer, "_play_tone", return_value=True) as tone:
        announcer._play("Garmoth spawns in 1 minutes")
    assert tone.call_count == 1
    print("[OK] Missing speech engine falls back to the tone")

    with mock.patch("announcer.shutil.which", return_value="/usr/bin/espeak-ng"), \
            mock.patch("announcer.subprocess.run") as run, \
            mock.patch.object(SpeechAnnouncer, "_play_tone", return_value=True) as tone:
        announcer._play("Garmoth spawns in 1 minutes")
    assert run.call_args.args[0] == ["espeak-ng", "-v", "en-us", "Garmoth spawns in 1 minutes"]
    assert tone.call_count == 0
    print("[OK] Speech uses the configured voice")



def test_queue_plays_in_order():
    announcer = SpeechAnnouncer(voice="en-us", message_delay=0)
    played = []
    with mock.patch.object(SpeechAnnouncer, "_play", side_effect=played.append):
        announcer.announce("Kutum spawns in 5 minutes")
        announcer.announce("Kutum spawns in 1 minutes")
        assert announcer.running
        announcer.message_queue.join()
        announcer.stop()
    assert played == ["Kutum spawns in 5 minutes", "Kutum spawns in 1 minutes"]
    assert not announcer.worker_thread.is_alive()
    print("[OK] Queued announcements play one after another")


def test_worker_survives_failed_playback():
    announcer = SpeechAnnouncer(voice="en-us", message_delay=0)
    played = []

    def play(text):
        played.append(text)
        if text == "first":
            raise RuntimeError("audio device gone")

    with mock.patch.object(SpeechAnnouncer, "_play", side_effect=play):
        announcer.announce("first")
        announcer.announce("second")
        announcer.message_queue.join()
        announcer.stop()
    assert played == ["first", "second"]
    print("[OK] A failed announcement does not stop the queue")


def test_speech_errors_fall_back_to_tone():
    announcer = SpeechAnnouncer(voice="en-us")
    errors = [
        subprocess.CalledProcessError(1, ["espeak-ng"]),
        subprocess.TimeoutExpired(["espeak-ng"], 20),
        OSError("exec format error"),
    ]
    for error in errors:
        with mock.patch("announcer.shutil.which", return_value="/usr/bin/espeak-ng"), \
                mock.patch("announcer.subprocess.run", side_effect=error), \
                mock.patch.object(SpeechAnnouncer, "_play_tone", return_value=True) as tone:
            announcer._play("Kutum spawns in 1 minutes")
        assert tone.call_count == 1, type(error).__name__
    print("[OK] Non-zero exit, timeout and exec errors fall back to the tone")


def test_speech_and_tone_failure_is_swallowed():
    announcer = SpeechAnnouncer(voice="en-us")
    with mock.patch("announcer.shutil.which", return_value=None), \
            mock.patch("announcer.pygame.mixer.get_init", side_effect=pygame.error("no audio device")):
        assert announcer._play_tone() is False
        announcer._play("Kutum spawns in 1 minutes")
    print("[OK] Speech and tone both failing drops the message without raising")


if __name__ == "__main__":
    test_recording_announcer()
    test_render_tone()
    test_speech_falls_back_to_tone()
    test_queue_plays_in_order()
    test_worker_survives_failed_playback()
    test_speech_errors_fall_back_to_tone()
    test_speech_and_tone_failure_is_swallowed()
    print("\nAll tests passed!")
