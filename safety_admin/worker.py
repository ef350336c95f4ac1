"""
Background worker.

Runs the ban-expiry sweep every BAN_SWEEP_INTERVAL_SECONDS. Expiry is also
applied lazily on every read, so the sweep only bounds how long an expired
ban can sit unread; with the interval at 0 the worker just idles.
"""
import time

from safety_admin.config.env_config import SafetyConfig, load_env_file

load_env_file()

from safety_admin.common.errors import SafetyAdminError
from safety_admin.container import build_default_container
from safety_admin.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)

IDLE_SLEEP_SECONDS = 60


def run_sweep_loop(container, interval: int, max_iterations=None, sleep=time.sleep) -> int:
    """Run the sweep ``max_iterations`` times (forever when None); returns bans expired."""
    total = 0
    iteration = 0
    while max_iterations is None or iteration < max_iterations:
        iteration += 1
        try:
            result = container.ban_manager.expire_due_bans()
            total += result['expired']
        except SafetyAdminError as exc:
            log_error(logger, exc, {'operation': 'ban_expiry_sweep'})
        sleep(interval)
    return total


if __name__ == "__main__":
    config = SafetyConfig.from_env()
    if config.ban_sweep_interval_seconds <= 0:
        logger.info("Worker service started. Ban sweep disabled, idling.")
        # Keep the container alive.
        while True:
            time.sleep(IDLE_SLEEP_SECONDS)

    logger.info("Worker service started. Running ban expiry sweep.", extra={
        'sweep_interval_seconds': config.ban_sweep_interval_seconds
    })
    run_sweep_loop(build_default_container(config), config.ban_sweep_interval_seconds)
