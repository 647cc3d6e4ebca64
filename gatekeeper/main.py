from gatekeeper.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Serve the API with uvicorn (``gatekeeper`` console script)."""
    import uvicorn

    uvicorn.run("gatekeeper.main:app", host="0.0.0.0", port=8000)
