from pydantic_settings import BaseSettings, SettingsConfigDict


# Validates settings from the environment and .env
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RESOURCE_STORAGE_",
        extra="ignore",
    )
    project_name: str = "Resource Storage"
    storage_type: str = "memory"
    es_url: str = "http://localhost:9200"
    default_limit: int = 10
    search_fields: list[str] = ["*"]
    log_level: str = "INFO"
    # Host applications usually own the logging configuration
    configure_logging: bool = False


settings = Settings()
