"""Shared FastAPI dependencies."""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, Request

from habitlog.context import AppContext
from habitlog.core.errors import JobUnauthorizedError, MissingIdentityError
from habitlog.services.sql_gateway import SqlGateway


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise MissingIdentityError()
    return x_user_id.strip()


def get_gateway(
    ctx: AppContext = Depends(get_context),
    user_id: str = Depends(get_user_id),
) -> SqlGateway:
    return ctx.gateway_for(user_id)


def require_job_token(
    x_job_token: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_context),
) -> None:
    if not x_job_token or not secrets.compare_digest(x_job_token, ctx.config.JOB_TOKEN):
        raise JobUnauthorizedError()
