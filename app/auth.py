import logging
from typing import Iterable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import Restaurant, User, UserRestaurant
from .plan_limits import has_feature

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"

ALL_ROLES = {
    "owner",
    "manager",
    "chef",
    "staff",
    "kiosk",
    "collaborator_accountant",
    "collaborator_inventory",
    "collaborator_chef",
}

FINANCE_ROLES = {"owner", "manager", "collaborator_accountant"}

# capability -> roles allowed (feature gates are applied on top in user_has_capability)
CAPABILITY_ROLES = {
    "view:transactions": FINANCE_ROLES,
    "edit:transactions": FINANCE_ROLES,
    "view:banking": FINANCE_ROLES,
    "view:expenses": FINANCE_ROLES,
    "edit:expenses": FINANCE_ROLES,
    "view:pending_outflows": FINANCE_ROLES,
    "edit:pending_outflows": FINANCE_ROLES,
    "view:chart_of_accounts": FINANCE_ROLES,
    "edit:chart_of_accounts": {"owner", "collaborator_accountant"},
    "view:ai_assistant": {"owner", "manager"},
    "view:financial_intelligence": FINANCE_ROLES,
    "view:pos_sales": {"owner", "manager", "chef"},
    "manage:subscription": {"owner"},
    "edit:payroll": {"owner", "manager"},
    "manage:integrations": {"owner"},
}

CAPABILITY_FEATURES = {
    "view:ai_assistant": "ai_assistant",
    "view:financial_intelligence": "financial_intelligence",
}


def decode_access_token(token: str) -> dict:
    """Verify an HS256 access token issued by the auth provider"""
    if not SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        return jose_jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        logger.warning("⚠️ Expired access token")
        raise HTTPException(status_code=401, detail="Token expired") from e
    except JWTError as e:
        logger.warning(f"⚠️ Invalid access token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer token, creating the local row on first sight"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = decode_access_token(credentials.credentials)
    user_id = claims.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.info(f"🆕 Creating new user: {claims.get('email')}")
        metadata = claims.get("user_metadata") or {}
        user = User(id=user_id, email=claims.get("email"), full_name=metadata.get("full_name"))
        db.add(user)
        db.commit()
        db.refresh(user)

    logger.debug(f"✅ User authenticated: {user.id}")
    return user


def get_user_role(db: Session, user_id: str, restaurant_id: str) -> Optional[str]:
    link = (
        db.query(UserRestaurant)
        .filter(UserRestaurant.user_id == user_id, UserRestaurant.restaurant_id == restaurant_id)
        .first()
    )
    return link.role if link else None


def require_restaurant_role(
    db: Session, user: User, restaurant_id: str, roles: Optional[Iterable[str]] = None
) -> str:
    """Return the user's role at the restaurant or raise 403"""
    role = get_user_role(db, user.id, restaurant_id)
    if role is None or (roles is not None and role not in set(roles)):
        logger.warning(f"🚫 User {user.id} denied at restaurant {restaurant_id} (role={role})")
        raise HTTPException(status_code=403, detail="Access denied")
    return role


def user_has_capability(role: Optional[str], capability: str, restaurant: Restaurant) -> bool:
    allowed = CAPABILITY_ROLES.get(capability)
    if not role or not allowed or role not in allowed:
        return False
    feature = CAPABILITY_FEATURES.get(capability)
    if feature and not has_feature(restaurant, feature):
        return False
    return True


def require_capability(db: Session, user: User, restaurant_id: str, capability: str) -> str:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if not restaurant:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    role = get_user_role(db, user.id, restaurant_id)
    if not user_has_capability(role, capability, restaurant):
        logger.warning(f"🚫 User {user.id} lacks {capability} at restaurant {restaurant_id}")
        raise HTTPException(status_code=403, detail="Access denied")
    return role
