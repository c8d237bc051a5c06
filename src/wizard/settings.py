"""Runtime settings for the ingestion wizard."""

import os

from pydantic import BaseModel, Field

DEFAULT_API_URL = "http://localhost:8080/api/integration"


class WizardSettings(BaseModel):
    """Where the integration service lives and how execution feedback behaves."""

    api_base_url: str = DEFAULT_API_URL
    request_timeout_seconds: float = 300.0

    # Execution progress is simulated: +step every interval, capped below 100
    progress_interval_seconds: float = 0.5
    progress_step: int = 5
    progress_ceiling: int = Field(default=90, ge=0, le=99)

    download_dir: str = "./downloads"

    @classmethod
    def from_env(cls) -> "WizardSettings":
        """Create settings from environment variables."""
        return cls(
            api_base_url=os.getenv("INGESTION_API_URL", DEFAULT_API_URL),
            request_timeout_seconds=float(os.getenv("INGESTION_TIMEOUT_SECONDS", "300")),
            progress_interval_seconds=float(os.getenv("INGESTION_PROGRESS_INTERVAL", "0.5")),
            progress_step=int(os.getenv("INGESTION_PROGRESS_STEP", "5")),
            progress_ceiling=int(os.getenv("INGESTION_PROGRESS_CEILING", "90")),
            download_dir=os.getenv("INGESTION_DOWNLOAD_DIR", "./downloads"),
        )
