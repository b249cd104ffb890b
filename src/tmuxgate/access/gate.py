"""HTTP middleware that enforces the access policy.

Every request is classified before any route handler runs. Denied
requests receive a uniform 403 body; allowed requests pass through
untouched.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tmuxgate.access.classifier import is_allowed
from tmuxgate.config.settings import AccessConfig
from tmuxgate.domain.models import AccessPolicy

logger = logging.getLogger(__name__)

_MAPPED_PREFIX = "::ffff:"


def client_address(request: Request, trust_proxy: bool = False) -> str | None:
    """Extract the client address, considering X-Forwarded-For when trusted."""
    address = None
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # Take the first address in the chain (original client)
            address = forwarded.split(",")[0].strip() or None
    if address is None and request.client is not None:
        address = request.client.host
    if address and address.lower().startswith(_MAPPED_PREFIX) and "." in address:
        address = address[len(_MAPPED_PREFIX):]
    return address


def denial_response(config: AccessConfig, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "success": False,
            "error": config.messages.access_denied,
            "message": message or config.messages.vpn_required,
        },
    )


def install_access_gate(app: FastAPI, policy: AccessPolicy, config: AccessConfig) -> None:
    """Register the access gate as an HTTP middleware on ``app``.

    Args:
        app: Application to protect.
        policy: Immutable policy used for every classification.
        config: Access settings (logging switches, proxy trust, messages).
    """

    @app.middleware("http")
    async def access_gate(request: Request, call_next):  # type: ignore[no-untyped-def]
        address = client_address(request, trust_proxy=config.trust_proxy)

        if config.log_access_attempts:
            logger.info("Access attempt from IP: %s (%s %s)",
                        address, request.method, request.url.path)

        if address is None:
            if config.log_denied_access:
                logger.warning("Access denied: client address unavailable")
            return denial_response(config, config.messages.invalid_ip)

        if not is_allowed(address, policy):
            if config.log_denied_access:
                logger.warning("Access denied for IP: %s", address)
            return denial_response(config)

        if config.log_access_attempts:
            logger.info("Access granted for IP: %s", address)
        return await call_next(request)
