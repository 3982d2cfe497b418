import uvicorn

from tasklist_engine.app import create_app
from tasklist_engine.config import get_settings
from tasklist_engine.logging_setup import setup_logging


def main():
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
