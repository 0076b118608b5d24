"""Usage payload model and builder.

One UsagePayload describes one completed request cycle. It is serialized
with camelCase keys for the watchman ingest API.
"""

import time
import uuid
from datetime import datetime, timezone
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.requests import Request
from starlette.responses import Response

from paraphraser.core.auth import UserIdentity
from paraphraser.core.config import settings
from paraphraser.features.analytics.logbuffer import LogEntry, drain_logs

ANONYMOUS_ID = "anonymous"
ANONYMOUS_EMAIL = "unknown@example.com"
ANONYMOUS_NAME = "Anonymous User"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class RequestSnapshot(_Record):
    headers: Dict[str, str]
    query: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    cookies: Dict[str, str] = Field(default_factory=dict)
    ip: str


class ResponseSnapshot(_Record):
    headers: Dict[str, str]
    body: Any = None
    cookies: Dict[str, str] = Field(default_factory=dict)


class ProfileDetails(_Record):
    avatar: str = ""
    bio: str = ""
    location: str = ""
    website: str = ""


class NotificationPreferences(_Record):
    email: bool = False
    push: bool = False
    sms: bool = False


class Preferences(_Record):
    theme: str = "light"
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    language: str = "en"
    timezone: str = "UTC"


class Subscription(_Record):
    plan: str = "free"
    status: str = "active"
    expires_at: Optional[str] = None


class UserDetails(_Record):
    id: str = ANONYMOUS_ID
    email: str = ANONYMOUS_EMAIL
    name: str = ANONYMOUS_NAME
    role: str = "user"
    status: str = "active"
    created_at: str
    last_login: str
    profile: ProfileDetails = Field(default_factory=ProfileDetails)
    preferences: Preferences = Field(default_factory=Preferences)
    subscription: Subscription = Field(default_factory=Subscription)
    permissions: List[str] = Field(default_factory=list)


class UsagePayload(_Record):
    id: str
    created_at: int
    method: str
    url: str
    status: int
    duration_ms: int
    product: str
    request: RequestSnapshot
    response: ResponseSnapshot
    user_agent: str
    user_id: str
    server_logs: List[LogEntry]
    user_details: UserDetails

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_payload_id(now: int) -> str:
    return f"req_{now}_{uuid.uuid4().hex[:9]}"


def headers_to_dict(raw_headers: Iterable[Tuple[bytes, bytes]]) -> Dict[str, str]:
    """Flatten raw ASGI headers; repeated names are joined with ", "."""
    result: Dict[str, str] = {}
    for raw_key, raw_value in raw_headers:
        key = raw_key.decode("latin-1").lower()
        value = raw_value.decode("latin-1")
        result[key] = f"{result[key]}, {value}" if key in result else value
    return result


def client_ip(request: Request) -> str:
    return request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip") or "unknown"


def response_cookies(response: Response) -> Dict[str, str]:
    cookies: Dict[str, str] = {}
    for raw_key, raw_value in response.raw_headers:
        if raw_key.lower() != b"set-cookie":
            continue
        jar = SimpleCookie()
        try:
            jar.load(raw_value.decode("latin-1"))
        except CookieError:
            continue
        cookies.update({name: morsel.value for name, morsel in jar.items()})
    return cookies


def display_name(user: Optional[UserIdentity]) -> str:
    if user is None:
        return ANONYMOUS_NAME
    if user.full_name:
        return user.full_name
    if user.first_name and user.last_name:
        return f"{user.first_name} {user.last_name}"
    return user.first_name or ANONYMOUS_NAME


def user_details(user: Optional[UserIdentity]) -> UserDetails:
    stamp = datetime.now(timezone.utc).isoformat()
    return UserDetails(
        id=(user.id if user else "") or ANONYMOUS_ID,
        email=(user.email if user else "") or ANONYMOUS_EMAIL,
        name=display_name(user),
        created_at=stamp,
        last_login=stamp,
    )


def build_usage_payload(
    request: Request,
    response: Response,
    start_time_ms: int,
    request_body: Any = None,
    response_body: Any = None,
    user: Optional[UserIdentity] = None,
    *,
    logs: Optional[List[LogEntry]] = None,
    product: Optional[str] = None,
) -> UsagePayload:
    """Assemble the usage record for one request cycle.

    Drains the current log buffer unless ``logs`` is supplied. Neither the
    request nor the response is modified.
    """
    now = now_ms()
    return UsagePayload(
        id=new_payload_id(now),
        created_at=now,
        method=request.method,
        url=str(request.url),
        status=response.status_code,
        duration_ms=max(0, now - start_time_ms),
        product=product or settings.WATCHMAN_PRODUCT,
        request=RequestSnapshot(
            headers=headers_to_dict(request.headers.raw),
            query=dict(request.query_params),
            body=request_body,
            cookies=dict(request.cookies),
            ip=client_ip(request),
        ),
        response=ResponseSnapshot(
            headers=headers_to_dict(response.raw_headers),
            body=response_body,
            cookies=response_cookies(response),
        ),
        user_agent=request.headers.get("user-agent") or "unknown",
        user_id=(user.id if user else "") or ANONYMOUS_ID,
        server_logs=drain_logs() if logs is None else list(logs),
        user_details=user_details(user),
    )
