"""
Clerk identity resolution.

Handles:
- Session JWT extraction (Authorization: Bearer, or Clerk's __session cookie)
- Signature verification: HS256 with CLERK_JWT_SECRET (dev/tests), else RS256 via JWKS
- Profile lookup through the Clerk Backend API
- create_test_jwt and transport/JWKS hooks so tests never touch the network

Identity is optional everywhere in this service: callers that only want
"who is this, if anyone" use resolve_user_identity(), which never raises.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm
from starlette.requests import Request

from paraphraser.core.config import settings

logger = logging.getLogger("paraphraser")

SESSION_COOKIE = "__session"
JWKS_CACHE_TTL_SECONDS = 86400

# JWKS override (tests) and cache keyed by issuer/jwks_url
_jwks_provider_override: Optional[Callable[[str, str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, tuple] = {}
_http_transport: Optional[httpx.AsyncBaseTransport] = None


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""


def set_jwks_provider_for_tests(provider: Optional[Callable[[str, str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def set_http_transport_for_tests(transport: Optional[httpx.AsyncBaseTransport]) -> None:
    """Route Clerk HTTP calls (JWKS, users API) through a fake transport."""
    global _http_transport
    _http_transport = transport


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=_http_transport, timeout=5.0)


async def get_jwks(issuer: str, jwks_url: Optional[str] = None) -> Dict[str, Any]:
    """Fetch JWKS using override (tests) or HTTP. Cached per issuer/url for 24h."""
    resolved_url = jwks_url or f"{issuer.rstrip('/')}/.well-known/jwks.json"
    cache_key = f"{issuer}|{resolved_url}"

    cached = _jwks_cache.get(cache_key)
    if cached and (time.time() - cached[0]) < JWKS_CACHE_TTL_SECONDS:
        return cached[1]

    if _jwks_provider_override:
        jwks = _jwks_provider_override(issuer, resolved_url)
    else:
        async with _client() as client:
            response = await client.get(resolved_url)
            response.raise_for_status()
            jwks = response.json()

    _jwks_cache[cache_key] = (time.time(), jwks)
    return jwks


def extract_session_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE) or None


async def verify_jwt_token(token: str) -> Dict[str, Any]:
    """
    Verify a Clerk session JWT and return its claims.

    Raises jwt.PyJWTError on invalid token or missing verification config.
    """
    secret = settings.CLERK_JWT_SECRET
    if secret:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True, "verify_aud": False},
        )

    issuer = settings.CLERK_ISSUER
    jwks_url = settings.CLERK_JWKS_URL
    if not issuer and not jwks_url:
        raise jwt.PyJWTError("CLERK_ISSUER or CLERK_JWKS_URL must be configured for RS256 verification")

    jwks = await get_jwks(issuer or "", jwks_url)

    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")

    matching_key = next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)
    if not matching_key:
        raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")

    public_key = RSAAlgorithm.from_jwk(json.dumps(matching_key))
    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        audience=settings.CLERK_AUDIENCE,
        issuer=issuer,
        options={
            "verify_signature": True,
            "verify_exp": True,
            "verify_aud": bool(settings.CLERK_AUDIENCE),
            "verify_iss": bool(issuer),
        },
    )


async def fetch_clerk_user(user_id: str) -> Optional[Dict[str, Any]]:
    """Load a user record from the Clerk Backend API. None when no secret key is configured."""
    if not settings.CLERK_SECRET_KEY:
        return None
    url = f"{settings.CLERK_API_URL.rstrip('/')}/users/{user_id}"
    async with _client() as client:
        response = await client.get(url, headers={"Authorization": f"Bearer {settings.CLERK_SECRET_KEY}"})
        response.raise_for_status()
        return response.json()


def _identity_from_profile(user_id: str, profile: Dict[str, Any]) -> UserIdentity:
    addresses = profile.get("email_addresses") or []
    email = (addresses[0].get("email_address") if addresses else "") or ""
    first = profile.get("first_name") or ""
    last = profile.get("last_name") or ""
    full = f"{first} {last}".strip() or email or "Unknown User"
    return UserIdentity(id=profile.get("id") or user_id, email=email, first_name=first, last_name=last, full_name=full)


def _identity_from_claims(user_id: str, claims: Dict[str, Any]) -> UserIdentity:
    email = claims.get("email") or ""
    first = claims.get("first_name") or claims.get("given_name") or ""
    last = claims.get("last_name") or claims.get("family_name") or ""
    full = claims.get("name") or f"{first} {last}".strip() or email or "Unknown User"
    return UserIdentity(id=user_id, email=email, first_name=first, last_name=last, full_name=full)


async def resolve_user_identity(request: Request) -> Optional[UserIdentity]:
    """
    Best-effort caller identity.

    Returns None for anonymous callers and on any verification or lookup
    failure; a missing identity is never an error here.
    """
    token = extract_session_token(request)
    if not token:
        return None

    try:
        claims = await verify_jwt_token(token)
    except Exception as e:
        logger.debug(f"Session token rejected: {e}")
        return None

    user_id = claims.get("sub")
    if not user_id:
        return None

    try:
        profile = await fetch_clerk_user(user_id)
    except Exception as e:
        logger.debug(f"Clerk user lookup failed for {user_id}: {e}")
        profile = None

    if profile:
        return _identity_from_profile(user_id, profile)
    return _identity_from_claims(user_id, claims)


def create_test_jwt(
    sub: str = "user_test",
    email: Optional[str] = "user@example.com",
    exp_minutes: int = 60,
    *,
    secret: str = "test-secret-key",
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
    **extra_claims: Any,
) -> str:
    """Signed session token for tests: HS256 with ``secret``, or RS256 with ``private_key`` and ``kid``."""
    issued = int(time.time())
    claims: Dict[str, Any] = {
        "sub": sub,
        "iat": issued,
        "exp": issued + exp_minutes * 60,
        "iss": issuer or settings.CLERK_ISSUER or "https://clerk.test",
        "aud": audience or settings.CLERK_AUDIENCE or "paraphraser",
    }
    if email:
        claims["email"] = email
    claims.update(extra_claims)

    signing_key = private_key if algorithm == "RS256" else secret
    return jwt.encode(claims, signing_key, algorithm=algorithm, headers={"kid": kid} if kid else None)
