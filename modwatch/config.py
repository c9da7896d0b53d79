"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("MODWATCH_DATA_DIR", str(PROJECT_ROOT / "data")))
SNAPSHOT_DIR = DATA_DIR / "snapshots"
SAVED_PAGES_DIR = DATA_DIR / "saved_pages"
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "mod_aggregator.db")))


class Config:
    """Application configuration."""

    # Fetch
    TIMEOUT: int = int(os.getenv("TIMEOUT", "20"))
    MAX_PAGE_BYTES: int = int(os.getenv("MAX_PAGE_BYTES", "5000000"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    RATE_PER_DOMAIN: float = float(os.getenv("RATE_PER_DOMAIN", "1.0"))
    USER_AGENT: str = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    )

    # Update checks
    CONCURRENCY: int = int(os.getenv("CONCURRENCY", "4"))
    CHECK_INTERVAL: int = int(os.getenv("CHECK_INTERVAL", "3600"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration values."""
        errors = []
        if cls.TIMEOUT <= 0:
            errors.append("TIMEOUT must be positive")
        if cls.MAX_PAGE_BYTES <= 0:
            errors.append("MAX_PAGE_BYTES must be positive")
        if cls.MAX_RETRIES < 1:
            errors.append("MAX_RETRIES must be at least 1")
        if cls.CONCURRENCY < 1:
            errors.append("CONCURRENCY must be at least 1")
        if cls.CHECK_INTERVAL < 1:
            errors.append("CHECK_INTERVAL must be at least 1 second")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


def ensure_data_dirs() -> None:
    """Create the data directories used by the stores."""
    for path in (DATA_DIR, SNAPSHOT_DIR, SAVED_PAGES_DIR, DB_PATH.parent):
        path.mkdir(parents=True, exist_ok=True)


config = Config()
