# auth.py
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from jobcrm.config import is_admin_email, settings
from jobcrm.database import get_db
from jobcrm.models.user import User
from jobcrm.schemas.user import Token, UserCreate, UserLogin, UserRead
from jobcrm.utils.jwt_handler import create_access_token
from jobcrm.utils.password_hash import hash_password, verify_password


router = APIRouter()


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)) -> UserRead:
    email = user_in.email.strip().lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    user = User(email=email, password=hash_password(user_in.password), name=user_in.name)
    db.add(user)
    db.commit()
    db.refresh(user)
    user_out = UserRead.model_validate(user)
    return user_out.model_copy(update={"is_admin": is_admin_email(user.email)})


@router.post("/login", response_model=Token)
def login_user(user_in: UserLogin, db: Session = Depends(get_db)) -> Token:
    user = db.query(User).filter(User.email == user_in.email.strip().lower()).first()
    if not user or not verify_password(user_in.password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_access_token({"sub": str(user.id)}, expires_delta)
    return Token(access_token=token, token_type="bearer")
