import logging

import firebase_admin
from fastapi import HTTPException, Request
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from pydantic import BaseModel
from supabase import create_client

from corpgpt.config import settings
from corpgpt.services.store import Store

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")
    return token


def _firebase_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        if settings.firebase_credentials:
            cred = credentials.Certificate(settings.firebase_credentials)
            return firebase_admin.initialize_app(cred)
        return firebase_admin.initialize_app()


def _verify_supabase(token: str) -> CurrentUser:
    supabase = create_client(settings.supabase_url, settings.supabase_anon_key)
    user_response = supabase.auth.get_user(token)
    if not user_response or not user_response.user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return CurrentUser(id=user_response.user.id, email=user_response.user.email)


def _verify_firebase(token: str) -> CurrentUser:
    decoded = firebase_auth.verify_id_token(token, app=_firebase_app())
    return CurrentUser(id=decoded["uid"], email=decoded.get("email"))


def resolve_auth_provider(store: Store, dev_auth: bool) -> str:
    """Pick how bearer tokens are verified: ``dev``, ``supabase``, ``firebase`` or ``none``.

    Outside development mode tokens are checked by the identity provider that
    belongs to the store actually in use.
    """
    if dev_auth:
        return "dev"
    return store.identity_provider


async def get_current_user(request: Request) -> CurrentUser:
    token = _bearer_token(request)
    provider = request.app.state.auth_provider

    # Development mode has no identity provider; the token is the user id
    if provider == "dev":
        return CurrentUser(id=token)
    if provider == "none":
        raise HTTPException(status_code=401, detail="No identity provider configured")

    try:
        if provider == "supabase":
            return _verify_supabase(token)
        return _verify_firebase(token)
    except HTTPException:
        raise
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed")
