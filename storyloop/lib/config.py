"""
Configuration loader for storyloop.

Loads coordinator settings from storyloop.env in the project directory.
A missing file means all defaults; bad values fall back with a warning.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from storyloop.lib import envparse
from storyloop.lib.errors import ConfigError
from storyloop.lib.signature import NORMALIZERS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "storyloop.env"
VERIFY_FILENAME = "verify.yaml"

DEFAULT_STUCK_THRESHOLD = 3
DEFAULT_FOUNDATION_MULTIPLIER = 2


@dataclass
class LoopConfig:
    """Coordinator settings from storyloop.env"""
    project_dir: Path
    prd_dir: Path
    state_dir: Path               # progress records and locks live here
    stuck_threshold: int = DEFAULT_STUCK_THRESHOLD
    foundation_multiplier: int = DEFAULT_FOUNDATION_MULTIPLIER
    signature_normalizer: str = "default"
    verify_timeout: int = 600     # seconds per verify step
    escalate_blockers: bool = True
    desktop_notify: bool = True
    lock_timeout: int = 60

    @property
    def progress_dir(self) -> Path:
        return self.state_dir / "progress"

    @property
    def lock_dir(self) -> Path:
        return self.state_dir / "locks"

    @property
    def verify_path(self) -> Path:
        return self.project_dir / VERIFY_FILENAME


def load_loop_config(project_dir: Path) -> LoopConfig:
    """Load storyloop.env from project_dir and return LoopConfig."""
    project_dir = Path(project_dir)
    config_path = project_dir / CONFIG_FILENAME

    env: dict[str, str] = {}
    if config_path.exists():
        try:
            env = envparse.load_env(config_path)
        except ValueError as e:
            raise ConfigError(str(e)) from None
    else:
        logger.debug(f"No {CONFIG_FILENAME} in {project_dir}, using defaults")

    normalizer = env.get("SIGNATURE_NORMALIZER", "default")
    if normalizer not in NORMALIZERS:
        logger.warning(
            f"Unknown SIGNATURE_NORMALIZER '{normalizer}', using 'default'. "
            f"Valid: {', '.join(sorted(NORMALIZERS))}"
        )
        normalizer = "default"

    return LoopConfig(
        project_dir=project_dir,
        prd_dir=project_dir / env.get("PRD_DIR", "prds"),
        state_dir=project_dir / env.get("STATE_DIR", ".storyloop"),
        stuck_threshold=envparse.get_int(env, "STUCK_THRESHOLD", DEFAULT_STUCK_THRESHOLD, minimum=1),
        foundation_multiplier=envparse.get_int(
            env, "FOUNDATION_MULTIPLIER", DEFAULT_FOUNDATION_MULTIPLIER, minimum=1
        ),
        signature_normalizer=normalizer,
        verify_timeout=envparse.get_int(env, "VERIFY_TIMEOUT", 600, minimum=1),
        escalate_blockers=envparse.get_bool(env, "ESCALATE_BLOCKERS", True),
        desktop_notify=envparse.get_bool(env, "DESKTOP_NOTIFY", True),
        lock_timeout=envparse.get_int(env, "LOCK_TIMEOUT", 60, minimum=0),
    )
