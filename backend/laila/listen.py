"""Hands-free mode: python -m laila.listen"""
import asyncio
import logging
from laila.assistant import Assistant
from laila.config import settings
from laila.main import configure_logging
from laila.speech import EdgeSpeechOutput, MicrophoneSpeechInput
from laila.storage import Storage
from laila.voice import VoiceSession

logger = logging.getLogger(__name__)

def _log_listening(listening: bool):
    logger.info("Listening for wake word" if listening else "Not listening")

async def run():
    configure_logging()
    storage = Storage()
    await storage.init_db()
    assistant = Assistant(storage)

    session = VoiceSession(
        MicrophoneSpeechInput(),
        EdgeSpeechOutput(),
        assistant.voice_command,
        on_listening_change=_log_listening,
        min_confidence=settings.wake_confidence_threshold,
    )
    session.start()
    if not session.listener.is_active:
        logger.error("No microphone available; install the voice extra (PyAudio)")
        return

    try:
        await asyncio.Event().wait()
    finally:
        session.stop()

def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
