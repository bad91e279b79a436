# docrag/config.py

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    OLLAMA_URL: str = "http://localhost:11434"
    # Unset means the selected backend's default model
    EMBED_MODEL: Optional[str] = None
    CHAT_MODEL: str = "llama3.2"
    # "sentence-transformers" embeds locally; chat still goes to Ollama
    EMBEDDING_BACKEND: Literal["ollama", "sentence-transformers"] = "ollama"

    INDEX_PATH: str = "data/index.json"
    CHUNK_SIZE: int = Field(default=1200, gt=0)
    CHUNK_OVERLAP: int = Field(default=200, ge=0)
    TOP_K: int = Field(default=5, ge=1)

    REQUEST_TIMEOUT: float = Field(default=120.0, gt=0)
    EMBED_WORKERS: int = Field(default=4, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def load_settings() -> Settings:
    return Settings()
