import uvicorn

from .config import Config
from .logging_setup import configure_logging


def main() -> None:
    configure_logging(Config.LOG_LEVEL, Config.LOG_PATH)
    uvicorn.run('shabetz.main:application', host=Config.HOST, port=Config.PORT, log_config=None)


if __name__ == '__main__':
    main()
