"""User profile: the name and avatar shown in every composer header."""

import logging

from corpgpt.auth import CurrentUser
from corpgpt.models.profile import Profile, ProfileUpdate
from corpgpt.services.store import Store

logger = logging.getLogger(__name__)


def needs_profile(profile: Profile | None) -> bool:
    """A user without a saved display name still has onboarding to finish."""
    return profile is None or not (profile.name or "").strip()


async def load_profile(store: Store, user_id: str) -> Profile | None:
    return await store.get_profile(user_id)


async def save_names(store: Store, user: CurrentUser, update: ProfileUpdate) -> None:
    fields = {
        "first_name": update.first_name,
        "last_name": update.last_name,
        "name": update.full_name,
    }
    if user.email:
        fields["email"] = user.email
    await store.merge_profile(user.id, fields)
    logger.info(f"Saved profile name for {user.id}")


async def set_image(store: Store, user_id: str, image: str) -> None:
    await store.merge_profile(user_id, {"profile_image": image})


async def clear_image(store: Store, user_id: str) -> None:
    await store.merge_profile(user_id, {"profile_image": None})
