import logging
import sys

from config import missing_required_env


def main() -> int:
    missing = missing_required_env()
    if missing:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger("lamacare").error(
            "Missing required environment variables: %s", ", ".join(missing)
        )
        return 1

    from lamacare import create_app

    app = create_app()
    app.run(host="0.0.0.0", port=app.config["PORT"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
