"""Run the API server: ``python -m order_settlement``."""
import uvicorn

from order_settlement.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "order_settlement.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
