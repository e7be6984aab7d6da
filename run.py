"""Start the SharpLook API with uvicorn.

Host, port and auto-reload are read from ``HOST``, ``PORT`` and
``RELOAD``.  Defaults are ``0.0.0.0``, ``8000`` and off.

Usage:
    python run.py
"""
import os

import uvicorn


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "false").lower() in {"1", "true", "yes"}
    uvicorn.run("sharplook_api.app.main:app", host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    main()
