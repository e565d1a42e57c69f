"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (REPOSEEK__SECTION__KEY)
3. Working-directory YAML (reposeek.yaml, or the path in REPOSEEK_CONFIG)
4. Global YAML (~/.config/reposeek/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    REPOSEEK__<SECTION>__<KEY>=<VALUE>

Examples:
    REPOSEEK__LOGGING__LEVEL=DEBUG
    REPOSEEK__SERVER__PORT=8080
    REPOSEEK__GITHUB__APP_TOKEN=ghs_xxx
    REPOSEEK__INDEXING__CREDITS_PER_FILE=2
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        REPOSEEK__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every extracted diff path.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """HTTP server configuration.

    Env vars:
        REPOSEEK__SERVER__HOST: Bind address (default: 127.0.0.1)
        REPOSEEK__SERVER__PORT: Port number (default: 8787)
        REPOSEEK__SERVER__SHUTDOWN_TIMEOUT_SEC: Time allowed for background work on stop
    """

    host: str = Field(
        default="127.0.0.1",
        description="Bind address. Use 0.0.0.0 for network access.",
    )
    port: int = Field(default=8787, description="Server port.")
    shutdown_timeout_sec: float = Field(
        default=30.0,
        description="How long to wait for in-flight indexing tasks on shutdown.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (0 <= v <= 65535):
            raise ValueError(f"Port must be 0-65535, got {v}")
        return v


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        REPOSEEK__DATABASE__PATH: SQLite database file
        REPOSEEK__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        REPOSEEK__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    path: str = Field(
        default="reposeek.db",
        description="SQLite database file. Relative paths resolve against the working dir.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts when acquiring a write lock fails.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class GitHubConfig(BaseModel):
    """Code host (GitHub REST API) configuration.

    Env vars:
        REPOSEEK__GITHUB__API_URL: API base URL (GitHub Enterprise support)
        REPOSEEK__GITHUB__APP_TOKEN: Fallback token when a user has none stored
        REPOSEEK__GITHUB__MAX_RETRIES: Retries on rate limits and 5xx
    """

    api_url: str = Field(default="https://api.github.com")
    app_token: str | None = Field(
        default=None,
        description="Fallback token for public API calls. Raises the rate limit; "
        "never used to decide whether a private repository is authorized.",
    )
    timeout_sec: float = Field(default=30.0)
    max_retries: int = Field(
        default=3,
        description="Retries on 429, 5xx and exhausted rate limits.",
    )
    retry_base_delay_sec: float = Field(default=1.0)
    retry_max_delay_sec: float = Field(default=30.0)
    user_agent: str = Field(default="reposeek")
    token_expiry_buffer_sec: float = Field(
        default=300.0,
        description="Stored credentials expiring within this window are treated as expired.",
    )


class IndexingConfig(BaseModel):
    """Indexing pipeline configuration.

    Env vars:
        REPOSEEK__INDEXING__CREDITS_PER_FILE: Credits charged per indexable file
        REPOSEEK__INDEXING__MAX_CONCURRENCY: Parallel file fetches during full index
        REPOSEEK__INDEXING__COMMIT_HISTORY_LIMIT: Commits pulled per history sync
    """

    credits_per_file: int = Field(default=1, ge=1)
    default_branch: str = Field(
        default="main",
        description="Branch used for reindexing when a project has none recorded.",
    )
    max_concurrency: int = Field(default=5, ge=1)
    max_file_bytes: int = Field(
        default=1_000_000,
        description="Files larger than this are skipped during indexing.",
    )
    commit_history_limit: int = Field(default=15, ge=1, le=100)
    embedding_model: str = Field(default="BAAI/bge-small-en-v1.5")
    max_embed_chars: int = Field(default=1500)
    extra_excluded_extensions: list[str] = Field(default_factory=list)
    extra_excluded_dirs: list[str] = Field(default_factory=list)


class ReposeekConfig(BaseModel):
    """Root configuration for reposeek.

    All settings can be configured via:
    1. Environment variables: REPOSEEK__SECTION__KEY
    2. YAML config files (working dir or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
