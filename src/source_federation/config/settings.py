"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Search backend (Elasticsearch)
    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_username: str = ""
    elasticsearch_password: str = ""
    elasticsearch_request_timeout_s: float = Field(default=30.0, gt=0)

    # Federation
    source_timeout_s: float = Field(default=5.0, gt=0)
    source_result_limit: int = Field(default=100, gt=0)
    default_result_cap: int = Field(default=200, gt=0)
    max_result_cap: int = Field(default=1000, gt=0)

    # History
    history_page_size: int = Field(default=50, gt=0)

    # Storage paths
    sqlite_config_db_path: str = "data/sources.db"
    sqlite_history_db_path: str = "data/history.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    json_logs: bool = False

    model_config = {"env_file": ".env", "env_prefix": "FED_"}
