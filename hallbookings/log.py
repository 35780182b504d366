import sys
from pathlib import Path

from loguru import logger

from hallbookings import settings


def configure_logging() -> None:
    """
    Replace loguru's default sink with stderr at LOG_LEVEL.

    When LOG_DIR is set, also write rotating files: app.log for everything,
    bookings.log / payments.log for records bound with a matching `log_type`,
    and errors.log for ERROR and above.
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    if not settings.LOG_DIR:
        return

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    fmt = "{time} | {level} | {message}"

    logger.add(
        log_dir / "app.log",
        rotation="1 week",
        retention="4 weeks",
        level="INFO",
        enqueue=True,
        format=fmt,
    )
    for log_type in ("booking", "payment"):
        logger.add(
            log_dir / f"{log_type}s.log",
            rotation="1 week",
            retention="4 weeks",
            level="INFO",
            enqueue=True,
            filter=lambda record, t=log_type: record["extra"].get("log_type") == t,
            format=fmt,
        )
    logger.add(
        log_dir / "errors.log",
        rotation="1 week",
        retention="8 weeks",
        level="ERROR",
        enqueue=True,
    )


booking_log = logger.bind(log_type="booking")
payment_log = logger.bind(log_type="payment")
