"""Entry: run the companion server with uvicorn."""
import uvicorn

from companion_server.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "companion_server.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
