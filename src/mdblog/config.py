"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    content_dir: Path = Path("blog/content/post")
    web_root: Path = Path("/app/public")
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8080
    metrics_port: int = 9090
    use_memory: bool = False
    access_log_path: Path | None = None
    site_author: str | None = None
    app_title: str = "Support Tools"

    # Build information reported by /version
    git_commit: str = "MISSING GIT COMMIT"
    build_time: str = "MISSING BUILD TIME"

    model_config = SettingsConfigDict(
        env_prefix="MDBLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
