"""Run the share service with uvicorn.

Usage:
    PORT=8000 python -m healthshare.app

Settings are read from the environment (see ShareSettings.from_env).
Outside ENVIRONMENT=local the Supabase stores are built from settings.
"""

import os

import uvicorn

from .main import create_app_from_env


def main():
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(create_app_from_env(), host=host, port=port)


if __name__ == "__main__":
    main()
