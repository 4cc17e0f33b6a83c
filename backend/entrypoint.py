"""
Entrypoint for running the backend server directly.

Applies WISHLISTS_HOST / WISHLISTS_PORT from the environment when set.
"""
import os

import uvicorn

from wishlists_app.main import app

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.getenv("WISHLISTS_HOST", "0.0.0.0"),
        port=int(os.getenv("WISHLISTS_PORT", "8000")),
    )
