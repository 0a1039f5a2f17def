from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.models import User
from app.schemas import ForgotPasswordRequest, ResetPasswordRequest, UserLogin, UserRegister
from app.serializers import user_to_dict
from app.services.email import EmailError, get_email_service
from app.services.otp import OTPError, consume_code, issue_code
from app.services.tasks import dispatch_detached
from app.utils.rate_limiter import RateLimits, limiter
from app.utils.responses import APIError, created_response, success_response
from app.utils.security import create_access_token, get_password_hash, verify_password, verify_token

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBearer(auto_error=False)


def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Optional[User]:
    if credentials is None:
        return None
    email = verify_token(credentials.credentials)
    if email is None:
        return None
    return db.query(User).filter(User.email == email, User.is_active == True).first()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get the current authenticated user"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = _user_from_credentials(credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Resolve the caller when a valid token is present; anonymous otherwise"""
    return _user_from_credentials(credentials, db)


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin role"""
    if user.role != "admin":
        raise APIError(status.HTTP_403_FORBIDDEN, "Admin access required", "ADMIN_REQUIRED")
    return user


def require_vendor(user: User = Depends(get_current_user)) -> User:
    """Require vendor role"""
    if user.role != "vendor":
        raise APIError(status.HTTP_403_FORBIDDEN, "Vendor access required", "VENDOR_REQUIRED")
    return user


@router.post("/register")
async def register(
    payload: UserRegister,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise APIError(400, "An account with this email already exists", "DUPLICATE_ENTRY")

    user = User(
        name=payload.name.strip(),
        email=email,
        phone_number=payload.phone_number,
        hashed_password=get_password_hash(payload.password),
        role="user",
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    dispatch_detached(background_tasks, "welcome-email", get_email_service().send_welcome_email, user.email, user.name)

    logger.info(f"User registered: {user.id} - {user.email}")
    return created_response("Account created successfully", {
        "user": user_to_dict(user),
        "access_token": create_access_token({"sub": user.email, "role": user.role}),
        "token_type": "bearer",
    })


@router.post("/login")
@limiter.limit(RateLimits.LOGIN)
async def login(request: Request, payload: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise APIError(401, "Invalid email or password", "INVALID_CREDENTIALS")
    if not user.is_active:
        raise APIError(403, "Account is deactivated", "ACCOUNT_INACTIVE")

    return success_response("Login successful", {
        "user": user_to_dict(user),
        "access_token": create_access_token({"sub": user.email, "role": user.role}),
        "token_type": "bearer",
    })


@router.post("/forgot-password")
@limiter.limit(RateLimits.FORGOT_PASSWORD)
async def forgot_password(request: Request, payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    user = db.query(User).filter(User.email == email).first()

    # Same response whether or not the account exists
    if user:
        otp = issue_code(db, email)
        try:
            get_email_service().send_otp(email, otp.otp_code)
        except EmailError as e:
            logger.error(f"Failed to send password reset OTP to {email}: {e}")
            raise APIError(500, "Failed to send verification code. Please try again later.", "EMAIL_SEND_FAILED")

    return success_response("If an account exists for this email, a verification code has been sent")


@router.post("/reset-password")
async def reset_password(
    payload: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    email = payload.email.lower()
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise APIError(400, "No active OTP found for this email", "OTP_NOT_FOUND")

    try:
        consume_code(db, email, payload.otp_code)
    except OTPError as e:
        raise APIError(400, e.message, e.code)

    if len(payload.new_password) < 8:
        raise APIError(400, "Password must be at least 8 characters", "WEAK_PASSWORD")

    user.hashed_password = get_password_hash(payload.new_password)
    db.commit()

    dispatch_detached(background_tasks, "password-reset-email", get_email_service().send_password_reset_email, user.email, user.name)

    logger.info(f"Password reset for user {user.id}")
    return success_response("Password has been reset successfully")
