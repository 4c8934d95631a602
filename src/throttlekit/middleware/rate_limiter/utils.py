"""
Utility functions for rate limiting.

Identity resolution turns a request into the identifier a limit applies to.
It never raises: anything that cannot be resolved becomes ``"unknown"``.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from loguru import logger
from starlette.requests import Request

UNKNOWN_IDENTIFIER = "unknown"
KEY_PREFIX = "rate_limit_"

DEFAULT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP")
DEFAULT_TOKEN_HEADERS = ("Authorization", "X-API-Key")

IDENTIFIER_TYPES = ("ip", "user", "route", "api_key", "token")

_USER_ID_FIELDS = ("id", "user_id", "sub", "username")


def hash_identifier(value: str) -> str:
    """
    Hash an identifier for use in store keys.

    The digest bounds key length and keeps raw values (tokens, addresses)
    out of the store; it is not used for secrecy.
    """
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class ClientIdentifier:
    """
    Strategies for extracting client identifiers from requests.

    Each strategy can be used alone or combined into a composite identifier.
    """

    @staticmethod
    def get_client_ip(
        request: Request, ip_headers: Sequence[str] = DEFAULT_IP_HEADERS
    ) -> str:
        """
        Extract client IP address from request.

        Only the proxy headers named in ``ip_headers`` are trusted, checked in
        order. The first address of the first non-empty header wins.

        Args:
            request: Starlette request object
            ip_headers: Trusted proxy header names in priority order

        Returns:
            Client IP address, or "unknown"
        """
        for header in ip_headers:
            value = request.headers.get(header)
            if value:
                first = value.split(",")[0].strip()
                if first:
                    return first

        # Fallback to direct client IP
        if request.client and request.client.host:
            return request.client.host

        return UNKNOWN_IDENTIFIER

    @staticmethod
    def get_user_id(request: Request) -> Optional[str]:
        """
        Extract the authenticated user's ID.

        Checks ``request.state.user`` (set by auth dependencies or middleware),
        then an authenticated ``scope["user"]``.

        Returns:
            User ID string or None if there is no authenticated user
        """
        candidates = [getattr(request.state, "user", None)]
        scope_user = request.scope.get("user")
        if scope_user is not None and getattr(scope_user, "is_authenticated", False):
            candidates.append(scope_user)

        for user in candidates:
            if not user:
                continue

            get_identifier = getattr(user, "get_identifier", None)
            if callable(get_identifier):
                return str(get_identifier())

            if isinstance(user, Mapping):
                for key in _USER_ID_FIELDS:
                    if user.get(key) is not None:
                        return str(user[key])
            else:
                for attr in _USER_ID_FIELDS:
                    if getattr(user, attr, None) is not None:
                        return str(getattr(user, attr))

        return None

    @staticmethod
    def get_user_identifier(
        request: Request, ip_headers: Sequence[str] = DEFAULT_IP_HEADERS
    ) -> str:
        """User-based identifier, falling back to the client IP for anonymous requests."""
        user_id = ClientIdentifier.get_user_id(request)
        if user_id is not None:
            return f"user_{user_id}"
        return ClientIdentifier.get_client_ip(request, ip_headers)

    @staticmethod
    def get_route_path(request: Request) -> str:
        """Matched route template when routing already ran, else the URL path."""
        route = request.scope.get("route")
        path = getattr(route, "path", None)
        return path or request.url.path

    @staticmethod
    def get_route_identifier(
        request: Request, ip_headers: Sequence[str] = DEFAULT_IP_HEADERS
    ) -> str:
        """Per-route, per-client identifier."""
        route = f"{request.method} {ClientIdentifier.get_route_path(request)}"
        return f"{route}_{ClientIdentifier.get_client_ip(request, ip_headers)}"

    @staticmethod
    def get_api_key_identifier(
        request: Request,
        token_headers: Sequence[str] = DEFAULT_TOKEN_HEADERS,
        ip_headers: Sequence[str] = DEFAULT_IP_HEADERS,
    ) -> str:
        """
        Identifier derived from an API key or bearer token.

        Headers are checked in order and the first one present wins. The
        token itself is hashed, never stored.

        Returns:
            "<scheme>_<hash>" for Authorization headers, "token_<hash>" for
            other headers, or the client IP when no header is present
        """
        for header in token_headers:
            value = request.headers.get(header)
            if not value:
                continue

            if header.lower() == "authorization":
                parts = value.split(" ", 1)
                if len(parts) == 2 and parts[1].strip():
                    scheme, token = parts[0].lower(), parts[1].strip()
                    return f"{scheme}_{hash_identifier(token)}"

            return f"token_{hash_identifier(value)}"

        return ClientIdentifier.get_client_ip(request, ip_headers)

    @staticmethod
    def resolve(
        request: Request,
        identifier: Union[str, Sequence[str]] = "ip",
        ip_headers: Sequence[str] = DEFAULT_IP_HEADERS,
        token_headers: Sequence[str] = DEFAULT_TOKEN_HEADERS,
    ) -> str:
        """
        Resolve an identifier type, or an ordered list of types, for a request.

        Composite identifiers join their parts with "_".
        """
        if isinstance(identifier, str):
            types = [identifier]
        else:
            types = list(identifier)

        extractors = {
            "ip": lambda: ClientIdentifier.get_client_ip(request, ip_headers),
            "user": lambda: ClientIdentifier.get_user_identifier(request, ip_headers),
            "route": lambda: ClientIdentifier.get_route_identifier(request, ip_headers),
            "api_key": lambda: ClientIdentifier.get_api_key_identifier(
                request, token_headers, ip_headers
            ),
            "token": lambda: ClientIdentifier.get_api_key_identifier(
                request, token_headers, ip_headers
            ),
        }

        parts = [extractors[t]() for t in types if t in extractors]
        return "_".join(parts) if parts else UNKNOWN_IDENTIFIER


def safe_identifier(
    callback: Callable[[Request], Any],
) -> Callable[[Request], str]:
    """
    Wrap a custom identifier callback so it can never fail a request.

    Exceptions and empty results degrade to "unknown".
    """

    def safe_extractor(request: Request) -> str:
        try:
            result = callback(request)
        except Exception as e:
            logger.warning(f"Identifier callback failed, using '{UNKNOWN_IDENTIFIER}': {e}")
            return UNKNOWN_IDENTIFIER
        if result is None or str(result) == "":
            return UNKNOWN_IDENTIFIER
        return str(result)

    return safe_extractor


def default_key_generator(identifier: str, request: Optional[Request] = None) -> str:
    """Store key for an identifier: fixed prefix plus identifier hash."""
    return f"{KEY_PREFIX}{hash_identifier(identifier)}"


def path_matches_prefix(path: str, prefix: str) -> bool:
    """True if ``path`` is ``prefix`` or lies below it on a path segment boundary."""
    base = prefix.rstrip("/")
    if not base:
        return path.startswith("/")
    return path == base or path.startswith(base + "/")


def format_reset_date(reset: int) -> str:
    """ISO-8601 UTC timestamp for an epoch reset time."""
    return datetime.fromtimestamp(reset, timezone.utc).isoformat()


def format_rate_limit_message(
    limit: int,
    window: int,
    retry_after: Optional[int] = None,
    custom_message: Optional[str] = None,
) -> str:
    """
    Format a user-friendly rate limit exceeded message.

    Args:
        limit: Rate limit (requests per window)
        window: Time window in seconds
        retry_after: Seconds until next request allowed
        custom_message: Message returned as is, except that the {limit}, {window}
            and {retry_after} placeholders are filled in

    Returns:
        Formatted error message
    """
    if custom_message:
        # Plain substitution, other braces (JSON bodies, unknown fields) stay literal
        values = {"limit": limit, "window": window, "retry_after": retry_after or 0}
        message = custom_message
        for name, value in values.items():
            message = message.replace("{" + name + "}", str(value))
        return message

    if window >= 3600:
        window_str = f"{window // 3600} hour(s)"
    elif window >= 60:
        window_str = f"{window // 60} minute(s)"
    else:
        window_str = f"{window} second(s)"

    message = f"Rate limit exceeded: {limit} requests per {window_str}"
    if retry_after:
        message += f". Try again in {retry_after} second(s)"
    return message
