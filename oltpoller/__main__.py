"""Entry point used by the process supervisor: python3 -m oltpoller"""
import uvicorn

from oltpoller.core.config import settings
from oltpoller.core.logging import configure_logging
from oltpoller.main import create_app


def main() -> None:
    configure_logging()
    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    main()
