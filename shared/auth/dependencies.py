"""FastAPI authentication dependencies"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict
import uuid

from shared.auth.jwt_handler import verify_token
from shared.cache.redis_client import cache_get, cache_set, cache_delete
from shared.database.models import Profile
from shared.database.session import get_db

security = HTTPBearer()

SCANNER_ROLES = ('admin', 'organizer', 'volunteer')

# Postgres roles Supabase puts in the top-level `role` claim
SUPABASE_TOKEN_ROLES = ('authenticated', 'anon', 'service_role')

ROLE_CACHE_TTL_SECONDS = 300


def get_role_cache_key(user_id: str) -> str:
    return f'profile:role:{user_id}'


async def invalidate_cached_role(user_id) -> None:
    '''Forget the cached role after profiles.role changes'''
    await cache_delete(get_role_cache_key(str(user_id)))


def _user_from_payload(payload: Dict) -> Optional[Dict]:
    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        return None

    role = payload.get('app_metadata', {}).get('role') or payload.get('role')
    if role in SUPABASE_TOKEN_ROLES:
        role = None
    return {
        'user_id': str(user_id),
        'email': payload.get('email'),
        'role': role or 'student',
        # Only present on volunteer session tokens
        'event_id': payload.get('event_id'),
        'username': payload.get('username'),
        'is_volunteer_session': payload.get('type') == 'volunteer',
    }


async def get_profile_role(db: AsyncSession, user_id: str) -> Optional[str]:
    '''
    Role stored in profiles.role, cached in Redis for 5 minutes.

    Returns None when the user has no profile.
    '''
    cache_key = get_role_cache_key(user_id)
    cached = await cache_get(cache_key)
    if cached:
        return cached.get('role')

    try:
        user_uuid = uuid.UUID(str(user_id))
    except ValueError:
        return None

    result = await db.execute(select(Profile.role).where(Profile.id == user_uuid))
    role = result.scalar_one_or_none()
    if role is not None:
        await cache_set(cache_key, {'role': role}, expire=ROLE_CACHE_TTL_SECONDS)
    return role


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Dict:
    '''
    Current user from the bearer token.

    The role comes from the user's profile; token claims are only used for
    volunteer sessions and for service tokens without a profile.
    '''
    payload = await verify_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid or expired token',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user = _user_from_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid token: missing user_id',
        )

    if not user['is_volunteer_session']:
        profile_role = await get_profile_role(db, user['user_id'])
        if profile_role is not None:
            user['role'] = profile_role
    return user


async def get_current_admin(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Require the admin role'''
    if current_user.get('role') != 'admin':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Admin permissions required'
        )
    return current_user


async def get_current_organizer(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Require the organizer or admin role'''
    role = current_user.get('role')
    if role not in ['organizer', 'admin']:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. Organizer or admin role required, your role is: {role}"
        )
    return current_user


async def get_current_scanner(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Require a role allowed to check tickets in'''
    if current_user.get('role') not in SCANNER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Scanner permissions required'
        )
    return current_user
