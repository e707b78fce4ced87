import asyncio
import logging
import sys

import logfire

from config import Settings, get_settings
from server import ExtractorServer


def setup_logging(settings: Settings) -> logging.Logger:
    # Initialize Logfire if enabled
    if settings.logfire_enabled:
        try:
            logfire.configure(
                token=settings.logfire_token,
                service_name=settings.logfire_service_name,
            )

            # Instrument HTTPX for page fetch tracing
            logfire.instrument_httpx()

            print(f"Logfire initialized for service: {settings.logfire_service_name}")
        except Exception as e:
            print(f"Failed to initialize Logfire: {e}")

    # Set logging level based on debug setting
    log_level = logging.DEBUG if settings.debug else logging.INFO

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            filename=settings.log_file,
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        logging.basicConfig(level=log_level)

    logger = logging.getLogger("web_content_extractor")
    logger.setLevel(log_level)

    if settings.log_file:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


async def main() -> None:
    settings = get_settings()

    logger = setup_logging(settings)

    server = ExtractorServer(logger, settings)

    try:
        await server.listen()
    except Exception as e:
        print(f"Error running server: {e}")
        sys.exit(1)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
