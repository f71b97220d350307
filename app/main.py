from app.core.app_factory import create_app
from app.core.config import settings

app = create_app()


if __name__ == "__main__":
    import uvicorn

    # uvicorn runs the lifespan shutdown on SIGTERM/SIGINT, which closes the limiter
    uvicorn.run(app, host=settings.app.host, port=settings.app.port)
