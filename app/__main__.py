# app/__main__.py

import uvicorn

from app.core.config import get_settings


def main():
    settings = get_settings()
    # uvicorn turns SIGINT/SIGTERM into a lifespan shutdown, which disposes the pool
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        proxy_headers=True,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
