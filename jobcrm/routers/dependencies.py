# dependencies.py
import hmac
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jobcrm.config import is_admin_email, settings
from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.schemas.user import TokenData
from jobcrm.services.llm_client import LLMClient
from jobcrm.services.rate_limiter import RateLimitExceeded, RateLimiterMemory, client_key
from jobcrm.utils.jwt_handler import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class EnvelopeError(Exception):
    """Carries a ready-made JSON body for routes with a fixed error contract."""

    def __init__(self, status_code: int, body: dict, headers: dict | None = None):
        super().__init__(body.get("error", "error"))
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body, headers=self.headers)


def get_current_user(db: Session = Depends(get_db), token: str = Depends(oauth2_scheme)) -> User:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_access_token(token)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    try:
        token_data = TokenData(user_id=int(user_id))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject") from exc
    user = db.query(User).filter(User.id == token_data.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not is_admin_email(current_user.email):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def get_llm(request: Request) -> LLMClient:
    llm = getattr(request.app.state, "llm", None)
    if llm is None:
        llm = LLMClient.from_settings()
        request.app.state.llm = llm
    return llm


def secret_matches(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_internal_key(request: Request) -> None:
    if not secret_matches(request.headers.get("x-internal-api-key"), settings.internal_api_secret):
        raise EnvelopeError(status.HTTP_401_UNAUTHORIZED, {"error": "Unauthorized"})


def default_rate_limit_key(request: Request) -> str:
    return client_key(request.headers.get("x-forwarded-for"), request.headers.get("x-api-key") or "")


def create_rate_limiter(
    limiter: RateLimiterMemory,
    key_generator: Callable[[Request], str] = default_rate_limit_key,
    message: str = "Rate limit exceeded. Please try again later.",
):
    """Dependency that counts each request against ``limiter``.

    Over the limit it answers 429 with ``Retry-After`` and ``X-RateLimit-*`` headers.
    """

    def dependency(request: Request) -> None:
        try:
            remaining = limiter.consume(key_generator(request))
        except RateLimitExceeded as exc:
            raise EnvelopeError(
                status.HTTP_429_TOO_MANY_REQUESTS,
                {"error": "Too many requests", "message": message, "retryAfter": exc.retry_after},
                headers={
                    "Retry-After": str(exc.retry_after),
                    "X-RateLimit-Limit": str(limiter.points),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": exc.reset_at.isoformat(),
                },
            ) from exc
        request.state.rate_limit_remaining = remaining

    return dependency
