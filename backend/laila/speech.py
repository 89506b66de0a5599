"""Platform speech bindings: microphone recognition and Edge TTS playback"""
import asyncio
import logging
import os
import shlex
import tempfile
import threading
from typing import Any, Callable, List, Optional
import edge_tts
import speech_recognition as sr
from laila.config import settings
from laila.voice import RecognitionAlternative, RecognitionResult, SpeechInputError

logger = logging.getLogger(__name__)

async def synthesize(text: str, voice: Optional[str] = None) -> bytes:
    """Render text to MP3 audio with Edge neural voices"""
    communicate = edge_tts.Communicate(text, voice or settings.tts_voice, rate="+5%", pitch="+5Hz")
    audio = bytearray()
    async for chunk in communicate.stream():
        if chunk["type"] == "audio":
            audio.extend(chunk["data"])
    return bytes(audio)

def _to_results(response: Any) -> List[RecognitionResult]:
    """Convert a show_all Google response into recognition results"""
    if not isinstance(response, dict) or not response.get("alternative"):
        return []
    alternatives = [
        RecognitionAlternative(
            transcript=alt.get("transcript", ""),
            confidence=float(alt.get("confidence", 0.0)),
        )
        for alt in response["alternative"]
    ]
    return [RecognitionResult(is_final=bool(response.get("final", True)), alternatives=alternatives)]

class MicrophoneSpeechInput:
    """Continuous microphone recognition on a worker thread.

    A restarted worker waits for the previous one to release the
    microphone, so at most one capture stream is open at a time.
    """

    def __init__(
        self,
        language: str = "en-IN",
        device_index: Optional[int] = None,
        listen_timeout: float = 5.0,
        phrase_time_limit: float = 8.0,
    ):
        self.language = language
        self.device_index = device_index
        self.listen_timeout = listen_timeout
        self.phrase_time_limit = phrase_time_limit
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

    @property
    def supported(self) -> bool:
        # Microphone access needs PyAudio
        try:
            return bool(sr.Microphone.list_microphone_names())
        except (AttributeError, OSError):
            return False

    def start(
        self,
        on_result: Callable[[List[RecognitionResult]], None],
        on_end: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        stop_event = threading.Event()
        self._stop_event = stop_event
        previous = self._worker

        try:
            microphone = sr.Microphone(device_index=self.device_index)
        except (AttributeError, OSError) as e:
            raise SpeechInputError(str(e)) from e

        def emit(callback, *args):
            if not stop_event.is_set():
                loop.call_soon_threadsafe(callback, *args)

        def worker():
            if previous is not None:
                previous.join()
            if stop_event.is_set():
                return
            recognizer = sr.Recognizer()
            try:
                with microphone as source:
                    recognizer.adjust_for_ambient_noise(source, duration=0.4)
                    while not stop_event.is_set():
                        try:
                            audio = recognizer.listen(
                                source, timeout=self.listen_timeout,
                                phrase_time_limit=self.phrase_time_limit
                            )
                        except sr.WaitTimeoutError:
                            continue
                        if stop_event.is_set():
                            break
                        try:
                            response = recognizer.recognize_google(
                                audio, language=self.language, show_all=True
                            )
                        except sr.UnknownValueError:
                            continue
                        except sr.RequestError as e:
                            logger.warning("Speech recognition request failed: %s", e)
                            emit(on_error, "network")
                            return
                        results = _to_results(response)
                        if results:
                            emit(on_result, results)
            except OSError as e:
                logger.warning("Microphone capture failed: %s", e)
                emit(on_error, "audio-capture")
                return
            emit(on_end)

        self._worker = threading.Thread(target=worker, name="laila-wake-listener", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._stop_event.set()

class EdgeSpeechOutput:
    """Speaks through Edge TTS and an external audio player.

    Every request restarts playback from scratch: any current utterance
    is stopped before the new one is synthesized.
    """

    def __init__(self, voice: Optional[str] = None, player_command: Optional[str] = None):
        self.voice = voice or settings.tts_voice
        self.player_command = player_command or settings.tts_player_command
        self._player: Optional[asyncio.subprocess.Process] = None
        self._speaking = False
        self._generation = 0

    def is_speaking(self) -> bool:
        return self._speaking

    async def speak(self, text: str) -> None:
        self.stop()
        generation = self._generation
        self._speaking = True
        path = None
        try:
            audio = await synthesize(text, self.voice)
            if generation != self._generation or not audio:
                return

            fd, path = tempfile.mkstemp(prefix="laila_tts_", suffix=".mp3")
            with os.fdopen(fd, "wb") as f:
                f.write(audio)

            self._player = await asyncio.create_subprocess_exec(
                *shlex.split(self.player_command), path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await self._player.wait()
        except Exception as e:
            # Playback problems count as finished speech
            logger.warning("Speech output failed: %s", e)
        finally:
            if generation == self._generation:
                self._speaking = False
                self._player = None
            if path and os.path.exists(path):
                os.remove(path)

    def stop(self) -> None:
        self._generation += 1
        if self._player is not None and self._player.returncode is None:
            self._player.terminate()
        self._player = None
        self._speaking = False
