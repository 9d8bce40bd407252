"""Application settings and configuration management."""

from functools import lru_cache
from typing import List

from pydantic import Field, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    app_name: str = Field(default="Hebrew Text Search")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    workers: int = Field(default=1)

    # Search Configuration
    max_results: int = Field(default=500)
    max_query_length: int = Field(default=200)
    fuzzy_threshold: float = Field(default=0.6)
    max_suggestions: int = Field(default=5)

    # Segmentation
    max_line_length: int = Field(default=300)  # lines longer than this are split on sentences
    max_segment_length: int = Field(default=200)  # segments longer than this are chunked
    chunk_target_length: int = Field(default=150)
    context_lines: int = Field(default=1)

    # Streaming scan
    batch_size: int = Field(default=50)
    parallel_workers: int = Field(default=2)
    parallel_scan_threshold: int = Field(default=0)  # corpora at least this large scan in worker batches, 0 disables

    # Index
    index_ttl_hours: float = Field(default=24.0)
    index_store_path: str = Field(default="")  # empty keeps the index in memory
    index_key: str = Field(default="main")
    index_meta_key: str = Field(default="indexInfo")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080", "http://localhost:8000"]
    )

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
