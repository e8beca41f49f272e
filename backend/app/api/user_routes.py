"""
User API routes.

Endpoints:
- PATCH /users/me - Update own profile
- DELETE /users/me - Deactivate own account
- POST /users/me/change-password - Change own password
- PUT /users/me/security-question - Set or change own security question
- GET /users - List users (admin only)
- POST /users/{user_id}/deactivate - Deactivate a user (admin only)
- POST /users/{user_id}/unlock - Unlock locked account (admin only)
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.error_handlers import AuthenticationError, NotFoundError, ValidationError
from app.models import User, UserRole
from app.dependencies.auth import get_current_user, require_admin
from app.services.credential_service import CredentialService, PasswordValidationError
from app.services.lockout_service import LockoutService
from app.services.revocation_service import RevocationService
from app.schemas.auth_schemas import (
    ChangePasswordRequest,
    ErrorResponse,
    MessageResponse,
    ProfileUpdate,
    SecurityQuestionUpdate,
    UserListResponse,
    UserResponse,
)
from app.utils.security import mask_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["User Management"])


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = CredentialService(db).find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found", resource_type="user")
    return user


def _deactivate(db: Session, user: User) -> None:
    user.is_active = False
    user.deactivated_at = datetime.utcnow()
    # Commits the status change together with the watermark
    RevocationService(db).revoke_all_for_principal(user.id)


# ==================== Own Account ====================

@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update own profile"
)
async def update_profile(
    profile: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update name, phone, birth date or promotions opt-in. Omitted fields are left unchanged."""
    for field, value in profile.model_dump(exclude_unset=True).items():
        if field == "name" and not value:
            raise ValidationError("Name must not be blank")
        setattr(current_user, field, value)

    db.commit()
    db.refresh(current_user)

    return UserResponse.from_user(current_user)


@router.delete(
    "/me",
    response_model=MessageResponse,
    summary="Deactivate own account"
)
async def deactivate_own_account(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Soft-delete the account: it can no longer sign in and every session
    ends immediately. The record is kept.
    """
    _deactivate(db, current_user)
    logger.info(f"Account deactivated by owner: {mask_email(current_user.email)}")

    return MessageResponse(message="Your account has been deactivated")


@router.post(
    "/me/change-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Change own password",
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def change_password(
    password_data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Change own password.

    **Usage:**
    ```
    POST /users/me/change-password
    Authorization: Bearer <token>
    {
        "current_password": "OldPass123!",
        "new_password": "NewSecurePass456!"
    }
    ```

    Every session, including the current one, is ended afterwards.

    **Errors:**
    - 401: Current password incorrect
    - 422: New password doesn't meet policy or equals the current one
    """
    # Verify current password
    if not CredentialService.verify_password(password_data.current_password, current_user.hashed_password):
        raise AuthenticationError("Current password is incorrect")

    # Validate new password
    try:
        CredentialService.validate_password_policy(
            password_data.new_password,
            personal_data=CredentialService.personal_data_for(current_user),
        )
    except PasswordValidationError as e:
        raise ValidationError(str(e))

    if password_data.new_password == password_data.current_password:
        raise ValidationError("New password must be different from the current password")

    # Hash and update password; the watermark update commits both
    CredentialService(db).set_password(current_user, password_data.new_password)
    RevocationService(db).revoke_all_for_principal(current_user.id)

    logger.info(f"Password changed for {mask_email(current_user.email)}")
    return MessageResponse(message="Password changed successfully. Please login again.")


@router.put(
    "/me/security-question",
    response_model=UserResponse,
    summary="Set or change own security question",
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def set_security_question(
    body: SecurityQuestionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Set or replace the question used for security-question recovery.

    Accounts with a password must confirm it in `current_password`. Google
    accounts without a password only need their session, so they can turn
    on question-based recovery after signing in with Google.

    **Errors:**
    - 401: Current password missing or incorrect
    - 422: Answer too short or too common
    """
    if current_user.hashed_password and not CredentialService.verify_password(
        body.current_password or "", current_user.hashed_password
    ):
        raise AuthenticationError("Current password is incorrect")

    CredentialService(db).set_security_question(current_user, body.question, body.answer)
    db.commit()
    db.refresh(current_user)

    logger.info(f"Security question updated for {mask_email(current_user.email)}")
    return UserResponse.from_user(current_user)


# ==================== Administration ====================

@router.get(
    "",
    response_model=UserListResponse,
    summary="List users (admin only)"
)
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    include_inactive: bool = Query(False, description="Include deactivated accounts"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """
    List users with pagination (admin only). Only active accounts unless
    `include_inactive=true`.
    """
    query = db.query(User)

    # Apply filters
    if role:
        query = query.filter(User.role == role.value)
    if not include_inactive:
        query = query.filter(User.is_active == True)

    # Get total count
    total = query.count()

    # Paginate
    offset = (page - 1) * page_size
    users = query.order_by(User.created_at.desc()).offset(offset).limit(page_size).all()

    return UserListResponse(
        users=[UserResponse.from_user(u) for u in users],
        total=total,
    )


@router.post(
    "/{user_id}/deactivate",
    response_model=UserResponse,
    summary="Deactivate a user (admin only)",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def deactivate_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """
    Deactivate an account and end all of its sessions (admin only).

    **Note:** Admins deactivate their own account with `DELETE /users/me`.
    """
    if current_user.id == user_id:
        raise ValidationError("Use DELETE /users/me to deactivate your own account")

    user = _get_user_or_404(db, user_id)
    _deactivate(db, user)
    db.refresh(user)

    logger.info(f"Account {mask_email(user.email)} deactivated by admin {current_user.id}")
    return UserResponse.from_user(user)


@router.post(
    "/{user_id}/unlock",
    response_model=UserResponse,
    summary="Unlock locked account (admin only)",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def unlock_account(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """
    Unlock a locked user account (admin only).

    **When to use:** Account locked due to too many failed login attempts
    """
    user = _get_user_or_404(db, user_id)

    if not user.locked_until or user.locked_until <= datetime.utcnow():
        raise ValidationError("Account is not locked")

    LockoutService(db).reset_on_success(user.email)
    db.refresh(user)

    logger.info(f"Account {mask_email(user.email)} unlocked by admin {current_user.id}")
    return UserResponse.from_user(user)
