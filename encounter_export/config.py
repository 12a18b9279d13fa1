import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration with environment variable support"""
    
    # Database
    database_url: str = "sqlite:///./encounters.db"
    
    # App
    app_name: str = "Encounter Export"
    debug: bool = False
    log_level: str = "INFO"
    
    # Timezone the persistence layer stores naive encounter timestamps in
    record_timezone: str = "UTC"
    
    # Bulk export
    export_output_dir: str = "data/export"
    export_max_seconds: int = 0  # 0 disables the shutdown deadline
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()


def configure_logging(level: str = None) -> None:
    """Set up root logging from settings (or an explicit level)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
