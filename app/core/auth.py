import hmac
from fastapi import Header, HTTPException
from loguru import logger

from app.core.settings import config


async def verify_token(x_token: str = Header(alias="X-Token")):
    """Verify the X-Token header sent by SMS forwarders."""

    if not hmac.compare_digest(x_token.encode("utf-8"), config.x_token.encode("utf-8")):
        logger.warning("Authentication failed: token mismatch")
        raise HTTPException(status_code=400, detail="X-Token header invalid")

    logger.debug("Authentication successful")
