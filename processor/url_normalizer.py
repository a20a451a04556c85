"""URL normalization for source URLs."""
import re
from typing import Optional
from urllib.parse import urlsplit

SCHEME_SUBSTITUTIONS = {
    'webcal': 'http',
    'webcals': 'https',
    'feed': 'http',
}

SUPPORTED_SCHEMES = ('http', 'https')

_SCHEME_RE = re.compile(r'^([a-zA-Z][a-zA-Z0-9+.-]*):')
_HOST_LABEL = r'[a-z0-9](?:[a-z0-9-]*[a-z0-9])?'
_HOSTNAME_RE = re.compile(rf'^{_HOST_LABEL}(?:\.{_HOST_LABEL})*\.?$')
_IPV4_RE = re.compile(r'^\d{1,3}(?:\.\d{1,3}){3}$')
_PORT_RE = re.compile(r'^\d+(?:[/?#]|$)')


def normalize_url(value: str) -> Optional[str]:
    """
    Normalize a user supplied URL.

    Strips whitespace, rewrites calendar/feed subscription schemes to the
    web scheme, prepends ``http://`` when no scheme is given and validates
    the result. Other schemes written without ``://`` are rejected, while
    a bare ``host:port`` is taken as a schemeless web address.

    Args:
        value: Raw URL string

    Returns:
        Normalized URL, or None if the value is blank or not a valid URL
    """
    if value is None:
        return None

    url = value.strip()
    if not url:
        return None

    match = _SCHEME_RE.match(url)
    if match:
        scheme = match.group(1).lower()
        if scheme in SCHEME_SUBSTITUTIONS:
            url = SCHEME_SUBSTITUTIONS[scheme] + url[len(scheme):]
        elif '://' not in url and not _PORT_RE.match(url[match.end():]):
            # Opaque URIs such as mailto: or tel:, not a host:port pair
            return None
    if '://' not in url:
        url = f"http://{url}"

    return url if is_valid_url(url) else None


def is_valid_url(url: str) -> bool:
    """Return True if url is an absolute http(s) URL with a sane host."""
    if any(ch.isspace() for ch in url) or '\\' in url:
        return False

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        # Accessing port validates it
        parts.port
    except ValueError:
        return False

    if parts.scheme.lower() not in SUPPORTED_SCHEMES or not hostname:
        return False

    if _IPV4_RE.match(hostname):
        return all(0 <= int(octet) <= 255 for octet in hostname.split('.'))
    try:
        # Internationalized names are checked in their ASCII form
        hostname = hostname.encode('idna').decode('ascii')
    except UnicodeError:
        return False
    return bool(_HOSTNAME_RE.match(hostname))
