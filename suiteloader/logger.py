import sys
from datetime import datetime
from pathlib import Path

from loguru import logger as _logger

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def define_log_level(
    print_level: str = "INFO",
    logfile_level: str = "DEBUG",
    name: str | None = None,
    log_to_file: bool = True,
):
    """Configure the suite logger.

    Replaces loguru's default sink with a stderr sink at ``print_level`` and,
    when ``log_to_file`` is set, a dated file sink under ``<project>/logs``.
    """

    current_date = datetime.now()
    formatted_date = current_date.strftime("%Y%m%d%H%M%S")
    log_name = f"{name}_{formatted_date}" if name else formatted_date

    _logger.remove()
    _logger.add(sys.stderr, level=print_level)

    if log_to_file:
        log_dir: Path = PROJECT_ROOT / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        _logger.add(log_dir / f"{log_name}.log", level=logfile_level)

    return _logger


logger = define_log_level(log_to_file=False)

