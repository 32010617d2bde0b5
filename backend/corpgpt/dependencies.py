from fastapi import Depends, HTTPException, Request

from corpgpt.auth import CurrentUser, get_current_user
from corpgpt.composers import Composer, get_composer
from corpgpt.services.chat_session import ChatSession
from corpgpt.services.preferences import PreferenceStore
from corpgpt.services.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_composer_or_404(composer: str) -> Composer:
    found = get_composer(composer)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Unknown composer: {composer}")
    return found


async def get_chat_session(
    composer: Composer = Depends(get_composer_or_404),
    user: CurrentUser = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> ChatSession:
    return await sessions.get(user.id, composer)


def get_preferences(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
) -> PreferenceStore:
    return request.app.state.preferences.for_user(user.id)
