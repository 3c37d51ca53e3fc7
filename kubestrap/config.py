"""Configuration management for the kubestrap application."""
import os

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Application configuration with sensible defaults."""

    # Timeouts (in seconds)
    SSH_TIMEOUT: int = int(os.getenv("SSH_TIMEOUT", "10"))
    COMMAND_TIMEOUT: int = int(os.getenv("COMMAND_TIMEOUT", "600"))

    # Parallelism
    FORKS: int = int(os.getenv("FORKS", "5"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # API
    API_KEY: str = os.getenv("KUBESTRAP_API_KEY", "")
    API_HOST: str = os.getenv("KUBESTRAP_API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("KUBESTRAP_API_PORT", "8000"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        required = {
            "KUBESTRAP_API_KEY": cls.API_KEY,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")


# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
