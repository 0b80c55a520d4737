"""
Configuration settings for the scriptforge compiler.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )

    # Compiler settings
    default_timezone: str = Field(
        default="Etc/UTC",
        description="Timezone written to the bundle manifest when the graph does not set one"
    )
    runtime_version: str = Field(
        default="1",
        description="Version marker of the shared runtime block"
    )

    # Secret sealing settings
    sealing_shared_key: Optional[str] = Field(
        default=None,
        description="Base64 shared key used to seal connector secrets"
    )
    sealing_default_ttl_seconds: int = Field(
        default=900,
        description="Default lifetime of a sealed secret token in seconds"
    )
    sealing_min_ttl_seconds: int = Field(
        default=60,
        description="Minimum lifetime of a sealed secret token in seconds"
    )

    # Test tooling
    dry_run_fixtures_dir: str = Field(
        default="tests/fixtures/dry_run",
        description="Directory holding dry-run fixture JSON files"
    )
    update_snapshots: bool = Field(
        default=False,
        description="Rewrite generated-source snapshots instead of comparing them"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create global settings instance
settings = Settings()
