"""Development server entry point."""

import logging
import os

from waitress import serve

from oidc_toolbox import create_app
from oidc_toolbox.config import Settings


def main() -> None:
    settings = Settings.load()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = create_app(settings)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))

    if settings.flask_env in ("development", "testing"):
        app.logger.info("Running development server (debug=%s)", settings.debug)
        app.run(host=host, port=port, debug=settings.debug, use_reloader=False)
    else:
        threads = int(os.getenv("WAITRESS_THREADS", 8))
        app.logger.info(f"Using Waitress WSGI server with {threads} threads")
        serve(app, host=host, port=port, threads=threads)


if __name__ == "__main__":
    main()
