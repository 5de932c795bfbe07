from loguru import logger

from heptabase_archive.cli import app


def main() -> None:
    logger.debug("Starting heptabase-archive")
    app()


if __name__ == "__main__":
    main()
