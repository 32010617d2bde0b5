from fastapi import APIRouter, Depends, HTTPException, Request

from corpgpt.auth import CurrentUser, get_current_user
from corpgpt.errors import StoreError
from corpgpt.models.profile import Profile, ProfileImageUpdate, ProfileResponse, ProfileUpdate
from corpgpt.services import profiles

router = APIRouter(tags=["profile"])


async def _respond(request: Request, user: CurrentUser) -> ProfileResponse:
    try:
        profile = await profiles.load_profile(request.app.state.store, user.id)
    except StoreError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return ProfileResponse(
        profile=profile or Profile(email=user.email),
        needs_profile=profiles.needs_profile(profile),
    )


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(request: Request, user: CurrentUser = Depends(get_current_user)):
    return await _respond(request, user)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        await profiles.save_names(request.app.state.store, user, body)
    except StoreError as e:
        raise HTTPException(status_code=502, detail="Failed to save name. Please try again.") from e
    return await _respond(request, user)


@router.put("/profile/image", response_model=ProfileResponse)
async def upload_profile_image(
    body: ProfileImageUpdate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        await profiles.set_image(request.app.state.store, user.id, body.image)
    except StoreError as e:
        raise HTTPException(
            status_code=502, detail="Failed to upload image. Please try again."
        ) from e
    return await _respond(request, user)


@router.delete("/profile/image", response_model=ProfileResponse)
async def delete_profile_image(request: Request, user: CurrentUser = Depends(get_current_user)):
    try:
        await profiles.clear_image(request.app.state.store, user.id)
    except StoreError as e:
        raise HTTPException(
            status_code=502, detail="Failed to delete image. Please try again."
        ) from e
    return await _respond(request, user)
