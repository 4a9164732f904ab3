import logging
from logging.handlers import RotatingFileHandler


def configure_logging(level: int = logging.INFO, path: str = "vivarium.log") -> None:
    logger = logging.getLogger()
    logger.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file (avoid filling SD card)
    fh = RotatingFileHandler(
        path, maxBytes=2_000_000, backupCount=5
    )
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    # Silence noisy driver logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("pymodbus").setLevel(logging.WARNING)
