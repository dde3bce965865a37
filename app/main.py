from fastapi import FastAPI
from contextlib import asynccontextmanager
from loguru import logger

from app.core.main_router import router as main_router
from app.core.logger import init_logging
from otp_relay.service import get_relay_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown events."""
    logger.info("Starting up OTP relay...")

    relay_service = get_relay_service()
    try:
        await relay_service.start()
        logger.info("Relay service startup completed")
    except Exception as e:
        logger.error(f"Failed to start relay service: {e}")

    yield

    logger.info("Shutting down OTP relay...")

    try:
        relay_service.stop()
        logger.info("Relay service shutdown completed")
    except Exception as e:
        logger.error(f"Error stopping relay service: {e}")


app = FastAPI(title="Agent OTP relay", lifespan=lifespan)

app.include_router(main_router)

init_logging()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3002)
