"""
Run the pipelines host with uvicorn.

    python -m pipelines_host
    pipelines-host            (console script)

HOST / PORT / GLOBAL_LOG_LEVEL come from the environment or .env.
"""

import uvicorn

from pipelines_host.api.main import create_app
from pipelines_host.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
