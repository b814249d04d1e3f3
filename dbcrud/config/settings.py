"""Configuration settings for dbcrud."""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database Configuration
    db_backend: str = Field(default="mysql", alias="DB_BACKEND")
    db_host: str = Field(default="localhost", alias="DB_HOST")
    db_port: int = Field(default=3306, alias="DB_PORT")
    db_name: str = Field(default="dbcrud", alias="DB_NAME")
    db_user: str = Field(default="root", alias="DB_USER")
    db_password: str = Field(default="", alias="DB_PASSWORD")
    db_schema: Optional[str] = Field(default=None, alias="DB_SCHEMA")

    # SQLite backend
    sqlite_path: str = Field(default="dbcrud.db", alias="SQLITE_PATH")

    # Connection Pool Settings
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")

    # Alias -> table name, e.g. TABLE_ALIASES='{"accounts": "ACCOUNT"}'
    table_aliases: Dict[str, str] = Field(default_factory=dict, alias="TABLE_ALIASES")

    # Application Configuration
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CLI Configuration
    default_output_format: str = Field(default="table", alias="DEFAULT_OUTPUT_FORMAT")
    default_page_size: int = Field(default=50, alias="DEFAULT_PAGE_SIZE")

    def resolve_table(self, name: str) -> str:
        """Map a configured alias to its table name; other names pass through."""
        return self.table_aliases.get(name, name)

    def alias_for(self, table: str) -> str:
        """Configured alias of ``table``, or the table name itself."""
        for alias, target in self.table_aliases.items():
            if target == table:
                return alias
        return table


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
