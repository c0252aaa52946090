from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from cms_server.config import Settings
from cms_server.http import create_app

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def main() -> None:
    load_dotenv()
    settings = Settings()
    settings.ensure_dirs()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
