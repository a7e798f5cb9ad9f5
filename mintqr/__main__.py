import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the QR mint claim server")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "3000")),
        help="Port number to run the server on",
    )
    parser.add_argument(
        "--reload", type=str, default="false", help="Reload the server on code changes"
    )
    args = parser.parse_args()
    reload = args.reload.strip().lower() in {"true", "1", "yes", "on"}

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s: %(message)s",
    )
    uvicorn.run(
        "mintqr.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=args.port,
        log_level="info",
        reload=reload,
    )
