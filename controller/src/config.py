from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Step settings
    default_step_timeout: int = 600  # 10 minutes default
    output_limit_bytes: int = 64 * 1024  # Captured output kept per step
    kill_grace_seconds: float = 5.0  # SIGTERM -> SIGKILL delay
    poll_interval: float = 0.1

    # Process environment
    shell: str = "/bin/sh"
    inherit_env: bool = True
    runtime_install_command: str = ""  # e.g. "nvm install {version}"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "FLOWGATE_"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
