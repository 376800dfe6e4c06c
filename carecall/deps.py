# carecall/deps.py
import os
import secrets
from fastapi import Header

from carecall.errors import Forbidden

# unset means no caller can authenticate
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN") or None

async def require_admin(x_admin_token: str | None = Header(default=None)):
    if not ADMIN_TOKEN or not x_admin_token:
        raise Forbidden("Forbidden")
    if not secrets.compare_digest(x_admin_token.encode(), ADMIN_TOKEN.encode()):
        raise Forbidden("Forbidden")
