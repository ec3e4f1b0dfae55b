import sys
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _normalise_db_url(url: str) -> str:
    """Ensure a Postgres DATABASE_URL uses the asyncpg driver prefix.

    Hosted Postgres providers usually hand out plain ``postgresql://``
    connection strings. SQLAlchemy's async engine requires
    ``postgresql+asyncpg://``. SQLite URLs pass through untouched.
    """
    if url.startswith("postgresql://") or url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url


class Settings(BaseSettings):
    """Build service settings loaded from environment variables.

    Accepted DATABASE_URL formats
    ─────────────────────────────
    • sqlite+aiosqlite:///...    (local default)
    • postgresql+asyncpg://...   (explicit driver)
    • postgresql://...           (normalised to asyncpg)
    • postgres://...             (legacy alias, normalised to asyncpg)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Durable cache store
    database_url: str = "sqlite+aiosqlite:///./exeforge.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def normalise_database_url(cls, v: str) -> str:
        return _normalise_db_url(v)

    # Filesystem roots. Workspaces are scratch space; artifacts are served.
    artifacts_dir: Path = Path("executables")
    workspace_dir: Path = Path("temp")

    # npm registry
    npm_registry_url: str = "https://registry.npmjs.org"
    registry_timeout_seconds: float = 30.0

    # Toolchain executables
    npm_command: str = "npm"
    npx_command: str = "npx"
    node_target: str = "node18"
    esbuild_package: str = "esbuild"
    pkg_package: str = "pkg"
    python_executable: str = sys.executable
    pyinstaller_command: str = "pyinstaller"

    # Per-step timeouts (seconds). There is no end-to-end build timeout.
    venv_timeout_seconds: int = 60
    install_timeout_seconds: int = 120
    bundle_timeout_seconds: int = 120
    compile_timeout_seconds: int = 300
    toolchain_install_timeout_seconds: int = 120

    # rlimits applied to toolchain subprocesses; 0 disables the cap.
    # Node and V8 reserve large virtual mappings, hence the generous default.
    toolchain_memory_limit_bytes: int = 12 * 1024 * 1024 * 1024
    toolchain_cpu_limit_seconds: int = 600

    debug: bool = True


def get_settings() -> Settings:
    return Settings()
