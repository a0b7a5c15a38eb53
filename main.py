from kimiproxy.logging_config import setup_logging
from kimiproxy.routes import create_app
from kimiproxy.settings import settings


# Configure logging once for the whole process.
setup_logging()

# FastAPI application instance for uvicorn.
app = create_app()


def run() -> None:
    import uvicorn

    # Use our own logging configuration from kimiproxy.logging_config.
    uvicorn.run("main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
