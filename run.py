#!/usr/bin/env python3
"""
Installment Ledger Entry Point

Starts the FastAPI server (port 8090 unless LEDGER_API_PORT is set).
"""

import sys

from installment_ledger.api import run_server
from installment_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Installment Ledger...")
    print(f"Storage: {config.storage_backend} ({config.database_url})")
    print(f"Currency: {config.currency}, default term {config.default_weeks} weeks")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug="--debug" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Installment Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
