"""Entry point for uvicorn/gunicorn: ``main:app``."""
from portfolio_admin.core.config import get_settings
from portfolio_admin.main import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.debug,
        log_config=None,
    )
