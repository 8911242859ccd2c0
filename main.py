"""Process entrypoint: .env loading, logging setup, startup report, uvicorn.

Run (from repo root):
  python main.py
"""

import logging
import os

from dotenv import find_dotenv, load_dotenv

from agriscout.services.analyze_service_v1 import _gateway_config_from_env, app

LOGGER = logging.getLogger("agriscout")


def load_environment() -> str:
    """Load the nearest .env (searching up from the working directory). Returns its path."""

    path = find_dotenv(usecwd=True)
    if path:
        # Real environment variables win over .env values.
        load_dotenv(path, override=False)
    return path


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def report_startup(port: int) -> bool:
    """Log where the server listens and whether Gemini is usable. Returns configured."""

    configured = _gateway_config_from_env().configured
    LOGGER.info("Agri-Scout AI server running on port %s", port)
    LOGGER.info("Local access: http://localhost:%s", port)
    LOGGER.info("Gemini API configured: %s", configured)
    if not configured:
        LOGGER.warning("GEMINI_API_KEY not set. AI analysis will not work.")
        LOGGER.warning("Create a .env file with your API key to enable AI features.")
    return configured


def main() -> None:
    import uvicorn

    load_environment()
    configure_logging()
    port = int(os.getenv("PORT", "3000"))
    report_startup(port)
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
