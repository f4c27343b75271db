"""Speak alert messages, falling back to a short tone when speech is unavailable."""
import math
import shutil
import subprocess
import threading
import time
import wave
from pathlib import Path
from queue import Queue, Empty
from typing import List, Optional

import pygame

try:
    from .logger import get_logger
except ImportError:
    from logger import get_logger

logger = get_logger(__name__)

SPEECH_COMMAND = "espeak-ng"

_TONE_SAMPLE_RATE = 44_100
_TONE_FREQUENCY_HZ = 880
_TONE_MAX_AMPLITUDE = 28_000
_TONE_DURATION_SECONDS = 0.35
_TONE_DECAY_RATE = 3.5
_TONE_FADE_IN_SECONDS = 0.01


class Announcer:
    """Capability the alert scheduler speaks through."""

    def announce(self, text: str) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        pass


class RecordingAnnouncer(Announcer):
    """Keeps announcements in memory instead of playing them (tests, --no-audio)."""

    def __init__(self, fail: bool = False):
        self.messages: List[str] = []
        self.fail = fail

    def announce(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("announcer unavailable")
        self.messages.append(text)
        logger.info(f"[SOUND] (silent) {text}")


def render_tone(destination: Path) -> Optional[Path]:
    """Render the fallback alert tone as a mono 16-bit WAV."""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(destination), "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(_TONE_SAMPLE_RATE)
            samples = max(1, int(_TONE_SAMPLE_RATE * _TONE_DURATION_SECONDS))
            fade_in_samples = max(1, int(_TONE_SAMPLE_RATE * _TONE_FADE_IN_SECONDS))
            frames = bytearray()
            for i in range(samples):
                t = i / _TONE_SAMPLE_RATE
                decay = math.exp(-_TONE_DECAY_RATE * t / _TONE_DURATION_SECONDS)
                fade_in = min(1.0, i / fade_in_samples)
                value = int(fade_in * decay * _TONE_MAX_AMPLITUDE * math.sin(2 * math.pi * _TONE_FREQUENCY_HZ * t))
                frames += value.to_bytes(2, byteorder="little", signed=True)
            wav_file.writeframes(bytes(frames))
        return destination
    except OSError as e:
        logger.warning(f"[SOUND] Could not render tone at {destination}: {e}")
        return None


class SpeechAnnouncer(Announcer):
    """Plays queued announcements one at a time on a worker thread."""

    def __init__(self, voice: str = "ko", tone_path: Optional[str] = None,
                 message_delay: float = 0.5, speech_timeout: float = 20.0):
        """
        Initialize the announcer.

        Args:
            voice: espeak-ng voice name (e.g. 'ko', 'en-us')
            tone_path: Where the fallback tone WAV is kept
            message_delay: Pause between consecutive announcements in seconds
            speech_timeout: Upper bound for a single utterance in seconds
        """
        self.voice = voice
        self.tone_path = Path(tone_path) if tone_path else Path("data") / "alert_tone.wav"
        self.message_delay = message_delay
        self.speech_timeout = speech_timeout
        self.message_queue = Queue()
        self.worker_thread = None
        self.running = False
        self._tone = None

    def start(self) -> None:
        """Start the playback worker thread."""
        if not self.running:
            self.running = True
            self.worker_thread = threading.Thread(target=self._worker, daemon=True)
            self.worker_thread.start()
            logger.info("[SOUND] Announcer worker thread started")

    def stop(self) -> None:
        """Stop the playback worker thread."""
        self.running = False
        if self.worker_thread:
            self.message_queue.put(None)  # Signal to stop
            self.worker_thread.join(timeout=5)
            logger.info("[SOUND] Announcer worker thread stopped")

    def announce(self, text: str) -> None:
        """Queue a message for playback."""
        if not self.running:
            self.start()
        logger.debug(f"[SOUND] Queueing announcement: {text}")
        self.message_queue.put(text)

    def _worker(self) -> None:
        while self.running:
            try:
                text = self.message_queue.get(timeout=1)
            except Empty:
                continue
            if text is None:
                break
            try:
                self._play(text)
            except Exception as e:
                logger.error(f"[SOUND] Announcement failed: {e}", exc_info=True)
            finally:
                self.message_queue.task_done()
            time.sleep(self.message_delay)

    def _play(self, text: str) -> None:
        if self._speak(text):
            return
        if not self._play_tone():
            logger.warning(f"[SOUND] Speech and tone both failed - dropping '{text}'")

    def _speak(self, text: str) -> bool:
        if shutil.which(SPEECH_COMMAND) is None:
            logger.debug(f"[SOUND] {SPEECH_COMMAND} not found - using tone")
            return False
        try:
            subprocess.run([SPEECH_COMMAND, "-v", self.voice, text],
                           check=True, timeout=self.speech_timeout,
                           stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
            logger.info(f"[SOUND] Spoke: {text}")
            return True
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"[SOUND] Speech failed ({e}) - using tone")
            return False

    def _play_tone(self) -> bool:
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init()
            if self._tone is None:
                if not self.tone_path.exists() and render_tone(self.tone_path) is None:
                    return False
                self._tone = pygame.mixer.Sound(str(self.tone_path))
            self._tone.play()
            logger.info("[SOUND] Played fallback tone")
            return True
        except (pygame.error, OSError) as e:
            logger.error(f"[SOUND] Error playing tone: {e}")
            return False
