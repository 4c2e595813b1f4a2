import logging
import sys
from pathlib import Path
from typing import Optional

# web3 and urllib3 log every RPC round-trip at DEBUG
NOISY_LOGGERS = ("web3", "urllib3", "asyncio", "aiohttp")


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging for a deployer run"""

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if logger.level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger
