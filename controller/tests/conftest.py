import pytest

from controller.src.config import Settings


@pytest.fixture
def settings():
    return Settings(
        default_step_timeout=30,
        output_limit_bytes=1024,
        kill_grace_seconds=1.0,
        poll_interval=0.02,
        runtime_install_command="",
    )

