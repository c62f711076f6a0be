"""
Usage tracking endpoints.

Provides usage statistics and plan limits for authenticated users.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from voiceflow.core.auth_dependency import get_current_user, get_db
from voiceflow.schemas.usage import UsageResponse
from voiceflow.services.usage_service import get_usage_for_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Usage"])


@router.get("/usage", status_code=status.HTTP_200_OK, response_model=UsageResponse)
def get_usage(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Current month usage for the authenticated user.
    
    Returns the effective plan, the cached tier and, per resource type,
    limit, used, remaining and whether more can be consumed.
    """
    usage_data = get_usage_for_response(db, user_id)
    
    logger.debug(f"Usage summary requested: user_id={user_id}, plan={usage_data['plan']}")
    
    return usage_data
