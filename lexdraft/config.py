"""
Configuration settings for the LexDraft backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Content generation (OpenAI-compatible chat completions endpoint)
    LLM_API_URL: str = "https://api.openai.com/v1/chat/completions"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT: int = 60  # seconds per generation call

    # Research (Tavily search)
    TAVILY_API_URL: str = "https://api.tavily.com/search"
    TAVILY_API_KEY: str = ""
    TAVILY_TIMEOUT: int = 20

    # Ollama embeddings for the memory store
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_EMBED_MODEL: str = "nomic-embed-text"

    # Chroma memory store
    CHROMA_HOST: str = "https://api.trychroma.com"
    CHROMA_API_KEY: str = ""
    CHROMA_TENANT: str = ""
    CHROMA_DATABASE: str = ""
    CHROMA_COLLECTION: str = "memoria_juridica"
    CHROMA_TIMEOUT: int = 20

    # Memory chunking / retrieval
    MEMORY_CHUNK_SIZE: int = 512  # characters
    MEMORY_CHUNK_OVERLAP: int = 64
    MEMORY_TOP_K: int = 5

    # Piece store: 0 keeps pieces for the whole process lifetime
    PIECE_TTL_SECONDS: int = 0

    # Export header, one line per "|" separated entry
    INSTITUTION_HEADER: str = "EXCELENTÍSSIMO(A) SENHOR(A) DOUTOR(A) JUIZ(A) DE DIREITO"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    def get_institution_header(self) -> List[str]:
        """Split INSTITUTION_HEADER into its non-empty lines."""
        return [line.strip() for line in self.INSTITUTION_HEADER.split("|") if line.strip()]


# Global settings instance
settings = Settings()
