import httpx
import hashlib
import logging
from typing import Optional, Dict
from jose import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 600  # 10 minutes


def get_token_cache_key(token: str) -> str:
    '''Cache key for a token (hashed, the token itself is never stored)'''
    token_hash = hashlib.sha256(token.encode()).hexdigest()
    return f'jwt:validated:{token_hash[:16]}'


async def verify_supabase_token(token: str) -> Optional[Dict]:
    '''
    Verify a Supabase JWT by asking the Auth server, as Supabase recommends.

    Validated payloads are cached in Redis for 10 minutes.
    '''
    if not settings.SUPABASE_URL:
        logger.error('SUPABASE_URL is not configured, cannot validate Supabase token')
        return None

    from shared.cache.redis_client import cache_get, cache_set

    cache_key = get_token_cache_key(token)
    cached_payload = await cache_get(cache_key)
    if cached_payload:
        return cached_payload

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(
                f'{settings.SUPABASE_URL}/auth/v1/user',
                headers={
                    'apikey': settings.SUPABASE_ANON_KEY,
                    'Authorization': f'Bearer {token}'
                }
            )
    except httpx.HTTPError as e:
        logger.error(f'Error validating token with Supabase: {e}')
        return None

    if response.status_code != 200:
        return None

    user_data = response.json()

    # Claims only; the signature was checked by Supabase above
    unverified_payload = jwt.get_unverified_claims(token)
    user_metadata = unverified_payload.get('user_metadata', {})
    app_metadata = unverified_payload.get('app_metadata', {})

    payload = {
        'sub': user_data.get('id'),
        'user_id': user_data.get('id'),
        'email': user_data.get('email'),
        'role': app_metadata.get('role') or user_metadata.get('role', 'student'),
        'aud': unverified_payload.get('aud'),
        'exp': unverified_payload.get('exp'),
        'iat': unverified_payload.get('iat'),
        'iss': unverified_payload.get('iss'),
        'user_metadata': user_metadata,
        'app_metadata': app_metadata
    }

    await cache_set(cache_key, payload, expire=CACHE_TTL_SECONDS)
    return payload
