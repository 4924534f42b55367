"""BTC Guess — application entry point.

Boots the FastAPI server and the background price/settlement loops.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from btcguess.api.routers import router

app = FastAPI(title="BTC Guess API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("btcguess")


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError):
    """Report malformed request bodies in the same {error} shape as the API."""
    problems = "; ".join(
        ".".join(str(p) for p in err["loc"]) + ": " + err["msg"]
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments, wire the runtime and serve."""
    import argparse
    import asyncio

    from btcguess.config import load_config

    parser = argparse.ArgumentParser(description="BTC price-direction guessing API")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--port", type=int, help="Override HTTP_PORT")
    parser.add_argument(
        "--feed",
        choices=["stream", "poll"],
        help="Override PRICE_FEED_MODE",
    )
    args = parser.parse_args()

    config = load_config(args.env_file)
    if args.feed:
        from dataclasses import replace

        config = replace(config, price_feed_mode=args.feed)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    asyncio.run(_serve(config, args.port or config.http_port))


async def _serve(config, port: int) -> None:
    """Start the API server and background loops concurrently.

    uvicorn owns SIGINT/SIGTERM; when the server exits the background
    loops are stopped so ``gather`` can return.
    """
    import asyncio

    import uvicorn

    from btcguess.runtime import Runtime

    runtime = Runtime(config)
    runtime.configure_api()

    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        try:
            await server.serve()
        finally:
            logger.info("Server stopped, stopping background loops.")
            runtime.stop_all()

    logger.info("API available at http://localhost:%d", port)
    try:
        results = await asyncio.gather(
            _run_server(),
            runtime.run_all(),
            return_exceptions=True,
        )
        logger.info("BTC Guess stopped. Results: %s", results)
    finally:
        await runtime.aclose()


if __name__ == "__main__":
    _run_cli()
