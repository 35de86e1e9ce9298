"""JWT token handling"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from jose import JWTError, jwt
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

JWT_ACCESS_TOKEN_EXPIRE_MINUTES = 30


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    '''Create a JWT access token'''
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({'exp': expire, 'type': to_encode.get('type', 'access')})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_volunteer_token(volunteer_id: str, event_id: str, username: str) -> str:
    '''
    Create the signed session token of an event volunteer.

    The event scope and the expiry travel as signed claims; the server
    never trusts a client-side login timestamp.
    '''
    return create_access_token(
        {
            'sub': volunteer_id,
            'role': 'volunteer',
            'event_id': event_id,
            'username': username,
            'type': 'volunteer',
        },
        expires_delta=timedelta(hours=settings.VOLUNTEER_SESSION_HOURS),
    )


def decode_token(token: str) -> Optional[Dict]:
    '''Decode and validate a backend JWT (signature and exp)'''
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


async def verify_token(token: str) -> Optional[Dict]:
    '''
    Verify a token.
    Supabase Auth tokens are delegated to Supabase; tokens issued by this
    backend (volunteer sessions, service tokens) are validated locally.
    '''
    try:
        unverified = jwt.get_unverified_claims(token)
    except JWTError:
        return None

    issuer = unverified.get('iss', '') or ''
    if 'supabase.co/auth' in issuer:
        from shared.auth.supabase_validator import verify_supabase_token
        return await verify_supabase_token(token)

    return decode_token(token)
