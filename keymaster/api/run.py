#!/usr/bin/env python3
"""Startup script for the Key Manager API."""

import uvicorn

from keymaster.environment import API_HOST, API_PORT, API_RELOAD, KEY_NAMESPACE


def main():
    """Run the API server."""
    try:
        from keymaster.api.main import app

        print(f"Starting Key Manager API on {API_HOST}:{API_PORT}")
        print(f"Key namespace: {KEY_NAMESPACE}")

        if API_RELOAD:
            # Use import string for reload mode
            uvicorn.run("keymaster.api.main:app", host=API_HOST, port=API_PORT, reload=True)
        else:
            uvicorn.run(app, host=API_HOST, port=API_PORT)

    except ImportError as e:
        print(f"Import error: {e}")
        print("Make sure keymaster is installed with its dependencies")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
