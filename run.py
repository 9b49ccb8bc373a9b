#!/usr/bin/env python3
"""
Loan Desk Entry Point

Starts the FastAPI server with the host and port from LOANDESK_* settings.
"""

import sys

from loan_desk.config import get_config
from loan_desk.server import run_server


if __name__ == "__main__":
    config = get_config()
    print("Starting Loan Desk...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Loan Desk...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
