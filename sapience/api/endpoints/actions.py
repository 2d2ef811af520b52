from fastapi import APIRouter, Depends, Request
from sapience.api.deps import get_background, get_llm_client
from sapience.core.auth import get_current_user
from sapience.models.user import User
from sapience.services.article_processor import process_in_new_session
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.llm_client import LLMClient
from slowapi import Limiter
from slowapi.util import get_remote_address

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/process-articles", status_code=202)
@limiter.limit("10/hour")
async def process_articles(
    request: Request,
    force_regenerate: bool = False,
    llm_client: LLMClient = Depends(get_llm_client),
    background: BackgroundTaskSet = Depends(get_background),
    current_user: User = Depends(get_current_user),
):
    """Start a processing pass for the current user in the background.

    Args:
        force_regenerate: Also retry every article whose summary failed before
    """
    background.spawn(
        process_in_new_session(
            current_user.id, force_regenerate=force_regenerate, llm_client=llm_client
        ),
        name=f"process-user-{current_user.id}",
    )
    return {
        "message": "Article processing started",
        "force_regenerate": force_regenerate,
    }
