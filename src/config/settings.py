"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, environment variables first and then the
project-root ``.env`` file.  Field ``ollama_base_url`` maps to the
``OLLAMA_BASE_URL`` variable and so on.  Defaults below apply when neither
source sets a field.  ``.env.example`` lists every variable.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docmind application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === AI provider selection ===
    # One of "ollama", "openai", "anthropic".  The factory falls back through
    # the remaining types in a fixed order when this one fails its probe.
    ai_provider: str = "ollama"
    ai_temperature: float = 0.7
    ai_max_tokens: int = 512
    # Upper bound on a single availability probe; a timeout counts as "down".
    provider_probe_timeout: float = 5.0
    # Seconds a failed probe is remembered; calls in that window skip the
    # type without probing it.  0 re-probes on every call.
    provider_failure_ttl: float = Field(default=10.0, ge=0)
    # Per-request timeout for generation and embedding calls.
    provider_request_timeout: float = 60.0

    # === Ollama (local model server) ===
    ollama_base_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "phi3:3.8b"
    ollama_embedding_model: str = ""  # empty = reuse ollama_model

    # === OpenAI / OpenAI-compatible hosted API ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # e.g. TogetherAI, Groq, a local vLLM
    openai_text_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"

    # === Anthropic ===
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"

    # === RAG configuration ===
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    # Expected vector dimension (1536 for text-embedding-3-small).  0 disables
    # the check so a local embedding model of any width can be used.
    embedding_dimension: int = Field(default=0, ge=0)
    rag_top_k: int = Field(default=5, ge=1)
    rag_similarity_threshold: float = 0.5
    qa_top_k: int = Field(default=3, ge=1)

    # === Persistence ===
    database_path: str = "data/docmind.db"

    # === Embedding job queue (Celery + Redis) ===
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = ""  # empty = redis_url
    celery_result_backend: str = ""  # empty = redis_url
    # Run tasks in the calling process instead of on a broker (dev and tests).
    celery_task_always_eager: bool = False
    embedding_max_attempts: int = Field(default=3, ge=1)
    embedding_retry_backoff: float = 2.0  # seconds, multiplied by attempt number
    # Per-document lock: must outlive the slowest job.
    embedding_lock_ttl: int = Field(default=600, ge=1)
    # How long a job waits for the same document's lock before deferring.
    embedding_lock_wait: float = Field(default=5.0, ge=0)
    worker_concurrency: int = Field(default=2, ge=1)

    # === App config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
