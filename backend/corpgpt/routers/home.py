from fastapi import APIRouter, Depends, Request

from corpgpt.auth import CurrentUser, get_current_user
from corpgpt.dependencies import get_preferences, get_session_manager
from corpgpt.models.chat import HomeAskRequest, HomeAskResponse, ThemeResponse
from corpgpt.services.home_assistant import HomeAssistant, parse_composer_links
from corpgpt.services.preferences import (
    PreferenceStore,
    is_dark_mode,
    reset_on_sign_out,
    toggle_dark_mode,
)
from corpgpt.services.session_manager import SessionManager

router = APIRouter(tags=["home"])


@router.post("/home/ask", response_model=HomeAskResponse)
async def ask_home_assistant(
    body: HomeAskRequest,
    request: Request,
    prefs: PreferenceStore = Depends(get_preferences),
):
    assistant = HomeAssistant(request.app.state.generator, prefs)
    reply = await assistant.ask(body.message)
    return HomeAskResponse(
        reply=reply,
        composer_links=parse_composer_links(reply or ""),
        conversation=assistant.conversation,
    )


@router.delete("/home/conversation", status_code=204)
async def clear_home_conversation(
    request: Request,
    prefs: PreferenceStore = Depends(get_preferences),
):
    HomeAssistant(request.app.state.generator, prefs).clear()


@router.get("/preferences/theme", response_model=ThemeResponse)
async def get_theme(prefs: PreferenceStore = Depends(get_preferences)):
    return ThemeResponse(dark_mode=is_dark_mode(prefs))


@router.post("/preferences/theme/toggle", response_model=ThemeResponse)
async def toggle_theme(prefs: PreferenceStore = Depends(get_preferences)):
    return ThemeResponse(dark_mode=toggle_dark_mode(prefs))


@router.post("/auth/sign-out", status_code=204)
async def sign_out(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    prefs: PreferenceStore = Depends(get_preferences),
    sessions: SessionManager = Depends(get_session_manager),
):
    reset_on_sign_out(prefs)
    request.app.state.preferences.release(user.id)
    await sessions.close_user(user.id)
