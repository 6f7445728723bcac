"""GRC runtime settings (Pydantic v2 Settings).

Every configurable path / flag lives here so that:

* The CLI never hard-codes relative paths.
* Environment overrides work (``GRC_DATA_DIR``, ``GRC_LOG_LEVEL``, etc.).
* Tests can inject a custom root via ``Settings(repo_root=tmp_path)``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from grc.core.paths import find_repo_root


class Settings(BaseSettings):
    """All runtime configuration for GRC.

    *repo_root* anchors every derived path.  If not supplied, it is
    auto-detected via :func:`grc.core.paths.find_repo_root`.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Root ────────────────────────────────────────────────
    repo_root: Path | None = None

    # ── Derived directory paths ─────────────────────────────
    data_dir: Path | None = None
    catalogs_dir: Path | None = None
    exports_dir: Path | None = None

    # ── Storage ─────────────────────────────────────────────
    db_filename: str = "grc.db"

    # ── Framework catalogue ─────────────────────────────────
    catalog_filename: str = "frameworks.yaml"
    catalog_max_size_kb: int = 512

    # ── Logging ─────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    # ── Audit export signing ────────────────────────────────
    export_key_env: str = "GRC_EXPORT_KEY"

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Fill in any path that was not explicitly overridden."""
        if self.repo_root is None:
            self.repo_root = find_repo_root()

        root = self.repo_root
        defaults: dict[str, Path] = {
            "data_dir": root / "data",
            "catalogs_dir": root / "catalogs",
            "exports_dir": root / "exports",
        }
        for attr, default_val in defaults.items():
            if getattr(self, attr) is None:
                setattr(self, attr, default_val)
        return self

    @property
    def db_path(self) -> Path:
        assert self.data_dir is not None  # guaranteed after validation
        return self.data_dir / self.db_filename

    @property
    def catalog_path(self) -> Path:
        """Default framework catalogue location."""
        assert self.catalogs_dir is not None
        return self.catalogs_dir / self.catalog_filename

    @property
    def catalog_max_size_bytes(self) -> int:
        return self.catalog_max_size_kb * 1024

    def ensure_dirs(self) -> None:
        """Create all local-state directories if they don't exist."""
        for d in (self.data_dir, self.catalogs_dir, self.exports_dir):
            assert d is not None
            d.mkdir(parents=True, exist_ok=True)
