from collections.abc import Iterable, Mapping

from geo_resolver.config import IpHeader
from geo_resolver.logger import logger


def extract_client_ip(
    headers: Mapping[str, str],
    remote_addr: str | None,
    ip_headers: Iterable[IpHeader],
) -> str:
    """Determine the caller's IP from trusted proxy headers or the connection address.

    Headers are checked in ascending priority; the first one carrying a value
    wins. Comma-separated values (X-Forwarded-For chains) yield their first
    non-empty entry. Falls back to `remote_addr`, or "" when that is unknown.
    """
    # Header names are case-insensitive. A repeated header keeps its first line,
    # which is the one the client-facing proxy wrote.
    lowered: dict[str, str] = {}
    for name, value in headers.items():
        lowered.setdefault(str(name).lower(), value)

    for header in sorted(ip_headers, key=lambda item: item.priority):
        header_name = header.name.lower()
        value = lowered.get(header_name)
        if not value:
            continue
        candidates = [part.strip() for part in value.split(",") if part.strip()]
        if candidates:
            logger.debug(f"Client IP taken from header header={header_name} ip={candidates[0]}")
            return candidates[0]

    client_ip = remote_addr or ""
    logger.debug(f"Client IP taken from connection ip={client_ip}")
    return client_ip
