"""
ASGI entry point for the loan desk API
"""

import uvicorn

from .api import create_app
from .config import get_config
from .logging_config import setup_logging


config = get_config()
logger = setup_logging(
    level=config.log_level,
    log_format=config.log_format,
    log_file=config.log_file
)

app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_desk.server:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        workers=None if debug else config.api_workers,
        log_level=config.log_level.lower()
    )
