"""Main entry point for the Broker Agent API server."""

import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file BEFORE importing agent modules
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Now import agent modules (they may need env vars)
from broker_api import create_app  # noqa: E402
from broker_config import load_config  # noqa: E402

# BROKER_CONFIG_PATH selects a YAML file; defaults apply without one
app = create_app(config=load_config())

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
