"""Configuration management"""
from pathlib import Path
from typing import List, Literal
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 8001
    log_level: str = "INFO"

    # Database
    storage_mode: Literal["memory", "sqlite"] = "sqlite"
    db_path: str = "./data/laila.db"

    # LLM (OpenAI-compatible endpoint)
    llm_api_key: str = ""
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_models: List[str] = ["llama-3.3-70b-versatile", "llama-3.1-8b-instant"]
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.7
    history_limit: int = 10

    # Security
    step_up_passphrase: str = "laila-confirm"

    # Execution boundary
    shell_path: str = "/bin/zsh"
    shell_timeout_seconds: float = 15.0
    shell_max_buffer_bytes: int = 512 * 1024
    output_char_limit: int = 2000
    automation_timeout_seconds: float = 30.0
    open_command: str = "open"
    youtube_timeout_seconds: float = 10.0

    # Speech
    tts_voice: str = "en-US-JennyNeural"
    tts_voice_alt: str = "ur-PK-UzmaNeural"
    tts_player_command: str = "afplay"
    wake_confidence_threshold: float = 0.5

    # CORS
    cors_origins: str = "*"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"

settings = Settings()

# Expand database path
settings.db_path = str(Path(settings.db_path).expanduser())
