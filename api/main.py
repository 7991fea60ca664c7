# api/main.py
from fastapi import FastAPI
from contextlib import asynccontextmanager
import argparse
import os
import sys
import logging
from dotenv import load_dotenv
from .feeds import router, GENERATORS
from .middleware import register_request_logging
from generator.generator import Generator

load_dotenv()
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

VERSION = "1.0.0"

STORES = {
    "saturn": (
        "Saturn",
        "https://www.saturn.de/de/data/fundgrube/api/postings",
        "https://www.saturn.de/de/data/fundgrube",
    ),
    "mediamarkt": (
        "MediaMarkt",
        "https://www.mediamarkt.de/de/data/fundgrube/api/postings",
        "https://www.mediamarkt.de/de/data/fundgrube",
    ),
}

logger = logging.getLogger("api")
logger.setLevel(LOG_LEVEL)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
logger.addHandler(handler)


def register_generators():
    """Create one feed generator per configured store, keyed by URL slug."""
    for slug, (name, api_base_uri, web_base_uri) in STORES.items():
        GENERATORS[slug] = Generator(name, api_base_uri, web_base_uri)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager closing the upstream clients on shutdown."""
    yield
    for generator in GENERATORS.values():
        await generator.close()


register_generators()

app = FastAPI(title="Fundgrube Feeds API", version=VERSION, lifespan=lifespan)

register_request_logging(app)

app.include_router(router)


def main(argv=None):
    """
    Parse command line arguments and serve the API with uvicorn.

    Args:
        argv (list[str], optional): Arguments, defaults to sys.argv[1:]

    Options:
        --version: Print the version and exit
        --debug: Log at DEBUG level regardless of LOG_LEVEL
    """
    parser = argparse.ArgumentParser(description="Serve Fundgrube postings as feeds")
    parser.add_argument("--version", action="store_true", help="print version and exit")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    if args.version:
        print(f"fundgrube-feeds api {VERSION}")
        sys.exit(0)

    if args.debug:
        logging.getLogger("api").setLevel(logging.DEBUG)
        logging.getLogger("generator").setLevel(logging.DEBUG)

    import uvicorn

    logger.info(f"Starting HTTP server on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())


# Run uvicorn externally or here
if __name__ == "__main__":
    main()
