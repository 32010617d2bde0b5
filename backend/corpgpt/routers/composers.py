from fastapi import APIRouter

from corpgpt.composers import ComposerCategory, search_composers

router = APIRouter(tags=["composers"])


@router.get("/composers", response_model=list[ComposerCategory])
async def list_composers(q: str = ""):
    return search_composers(q)
