from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from voiceflow.core.security import decode_access_token
from voiceflow.db.models.profile import Profile
from voiceflow.services.gateway import RazorpayGateway

bearer_scheme = HTTPBearer(auto_error=False)


def get_db(request: Request):
    """Database session dependency, from the factory built at startup."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_gateway(request: Request) -> RazorpayGateway:
    """Razorpay gateway built at startup."""
    return request.app.state.gateway


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    """Get current user id from the auth provider's bearer token."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    return user_id


def get_current_profile(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Profile:
    """Get the signed-in user's Profile row."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found"
        )
    return profile
