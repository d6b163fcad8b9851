import uvicorn

from insuratask.core.config import settings
from insuratask.core.logging_setup import setup_logging


def main():
    setup_logging()
    uvicorn.run("insuratask.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
