"""
ArtShelf configuration - content root, database and migration defaults
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os


def get_data_dir() -> Path:
    """Get ArtShelf data directory"""
    if os.name == 'nt':  # Windows
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    else:  # Linux/Mac
        base = Path.home()

    data_dir = base / '.artshelf'
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


class Settings(BaseSettings):
    # Storage
    data_dir: str = str(get_data_dir())
    database_url: Optional[str] = None  # Defaults to library.db inside data_dir
    scan_path: Optional[str] = None  # Content root all image paths are relative to

    # Migration defaults
    migration_batch_size: int = 200
    migration_concurrency: int = 3
    migration_pause_poll_interval: float = 0.8  # Seconds between pause checks
    migration_progress_interval: float = 1.0  # Min seconds between persisted progress writes
    migration_junk_entries: set = {"@eaDir", ".DS_Store"}  # Removed before the empty-dir check

    # Server
    host: str = "127.0.0.1"  # Localhost only for security
    port: int = 8788
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "ARTSHELF_"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
