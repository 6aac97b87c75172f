"""Run the API server: ``python -m authgate``."""

import uvicorn

from authgate.core.config import settings


def main() -> None:
    """Serve ``authgate.main:app`` on the configured host and port."""
    uvicorn.run(
        "authgate.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
