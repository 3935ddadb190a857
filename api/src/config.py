from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List

class Settings(BaseSettings):
    github_webhook_secret: str = ""
    # Looked up in order at the root of the checked-out repository
    workflow_files: List[str] = [
        ".pipeline.yml",
        ".pipeline.yaml",
        "pipeline.yml",
        "pipeline.yaml",
    ]
    max_runs_kept: int = 100

    class Config:
        env_file = ".env"
        env_prefix = "FLOWGATE_"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
