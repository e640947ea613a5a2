"""Entrypoint: run the source federation server."""

import uvicorn

from source_federation.api.app import create_app
from source_federation.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
