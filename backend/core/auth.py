"""
Firebase Authentication Module for the Cohort Term backend

Provides token verification and role checks via Firebase Auth.
Only privileged roles (admin, manager, editing teacher) may change terms.
"""

import os
from typing import Optional
from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth

from .config import initialize_firebase


# Security scheme for Bearer token. Missing credentials are reported as 401 below.
security = HTTPBearer(auto_error=False)

# Optional email domain restriction (empty = any domain)
ALLOWED_EMAIL_DOMAIN = os.getenv("ALLOWED_EMAIL_DOMAIN", "")


class UserRole(str, Enum):
    """User roles in the system."""
    STUDENT = "student"
    TEACHER = "teacher"
    EDITING_TEACHER = "editingteacher"
    MANAGER = "manager"
    ADMIN = "admin"


PRIVILEGED_ROLES = (UserRole.ADMIN, UserRole.MANAGER, UserRole.EDITING_TEACHER)


@dataclass
class AuthenticatedUser:
    """Represents an authenticated user from Firebase."""
    uid: str
    email: Optional[str]
    email_verified: bool
    role: UserRole
    display_name: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token.

    Args:
        token: The Firebase ID token to verify

    Returns:
        Decoded token claims

    Raises:
        HTTPException: If token is invalid or expired
    """
    initialize_firebase()
    try:
        return auth.verify_id_token(token)
    except auth.ExpiredIdTokenError:
        raise _unauthorized("Token has expired")
    except auth.RevokedIdTokenError:
        raise _unauthorized("Token has been revoked")
    except auth.InvalidIdTokenError:
        raise _unauthorized("Invalid token")
    except Exception as e:
        raise _unauthorized(f"Authentication failed: {str(e)}")


def validate_email_domain(email: Optional[str], domain: Optional[str] = None) -> bool:
    """
    Validate that the email belongs to the allowed domain.

    An empty domain setting accepts any well-formed address.
    """
    domain = ALLOWED_EMAIL_DOMAIN if domain is None else domain
    if not domain:
        return True

    if not email:
        return False

    email_lower = email.lower()

    # Must have @ symbol and characters before it
    if "@" not in email_lower or email_lower.startswith("@"):
        return False

    return email_lower.endswith(f"@{domain.lower()}")


def get_user_role(decoded_token: dict) -> UserRole:
    """
    Extract user role from token claims.

    A string "role" claim wins; otherwise boolean claims are checked from
    most to least privileged. Default role is STUDENT.
    """
    role_claim = decoded_token.get("role")
    if isinstance(role_claim, str):
        try:
            return UserRole(role_claim.lower())
        except ValueError:
            pass

    claims = decoded_token.get("claims", {})
    for role in (UserRole.ADMIN, UserRole.MANAGER, UserRole.EDITING_TEACHER, UserRole.TEACHER):
        if claims.get(role.value) or decoded_token.get(role.value):
            return role

    return UserRole.STUDENT


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthenticatedUser:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @app.get("/protected")
        async def protected_route(user: AuthenticatedUser = Depends(get_current_user)):
            return {"uid": user.uid}
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Unauthorized")

    decoded_token = verify_firebase_token(credentials.credentials)

    email = decoded_token.get("email")

    if not validate_email_domain(email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access restricted to @{ALLOWED_EMAIL_DOMAIN} email addresses"
        )

    return AuthenticatedUser(
        uid=decoded_token["uid"],
        email=email,
        email_verified=decoded_token.get("email_verified", False),
        role=get_user_role(decoded_token),
        display_name=decoded_token.get("name")
    )


async def get_privileged_user(
    user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
    """
    Dependency that ensures the user may create, edit or delete terms.

    Raises:
        HTTPException: If user does not hold a privileged role
    """
    if not user.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )
    return user
