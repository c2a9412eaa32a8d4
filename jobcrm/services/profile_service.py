# profile_service.py
from typing import Any

from sqlalchemy.orm import Session

from jobcrm.config import settings
from jobcrm.models.profile import UserProfileModel
from jobcrm.models.user import User
from jobcrm.schemas.profile import UserProfile


class ProfileNotFoundError(LookupError):
    pass


def build_user_profile(raw: dict[str, Any] | UserProfile | None) -> UserProfile:
    if isinstance(raw, UserProfile):
        return raw
    if not raw:
        return UserProfile()
    return UserProfile(**raw)


def get_user_profile(db: Session, user_id: int) -> UserProfile | None:
    record = db.query(UserProfileModel).filter(UserProfileModel.user_id == user_id).first()
    if not record:
        return None
    return build_user_profile(record.profile_data)


def save_user_profile(db: Session, user_id: int, profile: UserProfile) -> UserProfile:
    payload = profile.model_dump()
    record = db.query(UserProfileModel).filter(UserProfileModel.user_id == user_id).first()
    if record:
        record.profile_data = payload
    else:
        record = UserProfileModel(user_id=user_id, profile_data=payload)
        db.add(record)
    db.commit()
    db.refresh(record)
    return build_user_profile(record.profile_data)


def merge_profiles(base: UserProfile | None, overrides: UserProfile) -> UserProfile:
    origin = base or UserProfile()
    return origin.model_copy(update=overrides.model_dump(exclude_unset=True))


def get_master_profile(db: Session) -> tuple[int, UserProfile]:
    """Profile used for unauthenticated webhook enrichment.

    ``EXTENSION_PROFILE_EMAIL`` selects the owner; otherwise the oldest profile wins.
    """
    query = db.query(UserProfileModel)
    if settings.extension_profile_email:
        query = query.join(User, User.id == UserProfileModel.user_id).filter(
            User.email == settings.extension_profile_email.strip().lower()
        )
    record = query.order_by(UserProfileModel.created_at.asc(), UserProfileModel.id.asc()).first()
    if not record:
        raise ProfileNotFoundError("Master user profile not found")
    return record.user_id, build_user_profile(record.profile_data)
