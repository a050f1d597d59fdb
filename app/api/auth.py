"""
Dashboard authentication.

Merchant staff sign in with email and password and get a short-lived access token
plus a rotating refresh token. Access tokens carry the merchant id and role, so the
guarantee endpoints can scope every query to the caller's merchant.
"""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from app.config import Settings, get_settings, settings
from app.database import get_db
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.schemas.auth import MerchantSummary, RefreshRequest, Token, UserResponse

logger = structlog.get_logger()

router = APIRouter()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ACCESS = "access"
REFRESH = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _encode(claims: dict, lifetime: timedelta, cfg: Settings) -> str:
    claims = {**claims, "exp": datetime.utcnow() + lifetime}
    return jwt.encode(claims, cfg.jwt_secret_key, algorithm=cfg.jwt_algorithm)


def create_access_token(user: User, cfg: Settings = settings) -> str:
    return _encode(
        {
            "sub": str(user.id),
            "type": ACCESS,
            "tenant_id": str(user.tenant_id) if user.tenant_id else None,
            "role": user.role.value,
        },
        timedelta(minutes=cfg.access_token_expire_minutes),
        cfg,
    )


def create_refresh_token(user: User, cfg: Settings = settings) -> str:
    return _encode(
        # jti keeps each rotation distinct within the same second
        {"sub": str(user.id), "type": REFRESH, "jti": uuid4().hex},
        timedelta(days=cfg.refresh_token_expire_days),
        cfg,
    )


def _user_id_from(token: str, token_type: str, cfg: Settings, error: HTTPException) -> UUID:
    """Subject of a valid token of the given type, or `error`"""
    try:
        payload = jwt.decode(token, cfg.jwt_secret_key, algorithms=[cfg.jwt_algorithm])
    except JWTError:
        raise error
    if payload.get("type") != token_type:
        raise error
    try:
        return UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise error


async def _load_user(db: AsyncSession, user_id: UUID):
    result = await db.execute(
        select(User)
        .options(selectinload(User.tenant).selectinload(Tenant.guarantee_config))
        .where(User.id == user_id)
    )
    return result.scalar_one_or_none()


def _ensure_merchant_active(user: User) -> None:
    # Platform users have no merchant
    if user.tenant is not None and not user.tenant.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Merchant account suspended",
        )


async def _issue_tokens(db: AsyncSession, user: User, cfg: Settings) -> Token:
    """New access/refresh pair; the stored refresh token is replaced, revoking the old one"""
    access_token = create_access_token(user, cfg)
    refresh_token = create_refresh_token(user, cfg)
    user.refresh_token = refresh_token
    await db.commit()
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=cfg.access_token_expire_minutes * 60,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    cfg: Settings = Depends(get_settings),
) -> User:
    user_id = _user_id_from(token, ACCESS, cfg, _unauthorized())
    user = await _load_user(db, user_id)
    if user is None or not user.is_active:
        raise _unauthorized()
    _ensure_merchant_active(user)
    return user


async def get_merchant_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Dashboard user attached to a merchant; guarantee endpoints are merchant scoped"""
    if current_user.tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not attached to a merchant",
        )
    return current_user


def require_role(required_role: UserRole):
    """Merchant user holding at least `required_role`"""
    async def role_checker(current_user: User = Depends(get_merchant_user)) -> User:
        if not current_user.has_permission(required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    """Sign in with email (case-insensitive) and password"""
    email = form_data.username.strip().lower()
    result = await db.execute(
        select(User)
        .options(selectinload(User.tenant))
        .where(func.lower(User.email) == email)
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning("Dashboard sign-in failed", email=email)
        raise _unauthorized("Incorrect email or password")
    if not user.is_active:
        raise _unauthorized("User account is disabled")
    _ensure_merchant_active(user)

    user.last_login = datetime.utcnow()
    logger.info("Dashboard sign-in", user_id=str(user.id), tenant_id=str(user.tenant_id) if user.tenant_id else None)
    return await _issue_tokens(db, user, cfg)


@router.post("/refresh", response_model=Token)
async def refresh_token(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    """Exchange a refresh token for a new pair; each refresh token works once"""
    invalid = _unauthorized("Invalid refresh token")
    user = await _load_user(db, _user_id_from(request.refresh_token, REFRESH, cfg, invalid))

    if user is None or not user.is_active:
        raise invalid
    if user.refresh_token != request.refresh_token:
        logger.warning("Stale refresh token presented", user_id=str(user.id))
        raise invalid
    _ensure_merchant_active(user)

    return await _issue_tokens(db, user, cfg)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """Signed-in user with a summary of their merchant's guarantee setup"""
    response = UserResponse.model_validate(current_user)
    tenant = current_user.tenant
    if tenant is not None:
        config = tenant.guarantee_config
        response.merchant = MerchantSummary(
            id=tenant.id,
            name=tenant.name,
            agent_id=tenant.agent_id,
            guarantee_enabled=bool(config and config.enabled),
            stripe_connected=bool(config and config.stripe_account_id),
        )
    return response


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Revoke the stored refresh token; the access token simply expires"""
    current_user.refresh_token = None
    await db.commit()
    return {"message": "Successfully logged out"}
