"""Client IP resolution across proxy headers.

Sessions are bound to the IP resolved here, so login and every later check
must use the same precedence. Default order (ClientIPConfig.headers):

1. cf-connecting-ip (CDN)
2. x-forwarded-for (first hop only)
3. x-real-ip
4. x-vercel-forwarded-for

When none is present the IP is the literal sentinel "unknown".
"""

from collections.abc import Mapping, Sequence

UNKNOWN_IP = "unknown"


def resolve_client_ip(headers: Mapping[str, str], precedence: Sequence[str]) -> str:
    """Return the client IP from the first populated header in `precedence`.

    Args:
        headers: Request headers (case-insensitive mapping, e.g. starlette Headers)
        precedence: Header names, highest precedence first

    Returns:
        The resolved IP, or UNKNOWN_IP
    """
    for name in precedence:
        value = headers.get(name)
        if not value:
            continue
        # Comma separated chains carry the original client first
        ip = value.split(",")[0].strip()
        if ip:
            return ip
    return UNKNOWN_IP


def is_unknown_ip(ip: str | None) -> bool:
    return not ip or ip == UNKNOWN_IP
