"""URL canonicalization used as the cache key."""
import re
from urllib.parse import urlsplit, urlunsplit

DEFAULT_PORTS = {"http": "80", "https": "443"}

# Trailing whitespace is only stripped from the input as a whole; it can
# reappear at the end of the path or query once the fragment is dropped.
_TRAILING_SPACE_RE = re.compile(r"\s+$")
_TRAILING_PATH_RE = re.compile(r"[\s/]+$")


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL:
    - scheme and host lowercased, default port dropped
    - fragment dropped, query kept apart from trailing whitespace
    - trailing slashes and whitespace stripped from the path unless it is the root

    Strings without scheme and host are returned stripped but otherwise untouched.
    normalize_url(normalize_url(u)) == normalize_url(u) for every string.
    """
    url = (url or "").strip()
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    scheme = parts.scheme.lower()
    userinfo, _, hostport = parts.netloc.rpartition("@")
    host = hostport.lower()
    if port is not None and DEFAULT_PORTS.get(scheme) == str(port):
        host = host[: host.rfind(":")]
    if not host:
        return url
    netloc = f"{userinfo}@{host}" if userinfo else host

    query = _TRAILING_SPACE_RE.sub("", parts.query)
    path = _TRAILING_PATH_RE.sub("", parts.path) or "/"
    return urlunsplit((scheme, netloc, path, query, ""))


def is_root_path(url: str) -> bool:
    """True for URLs pointing at the site root ("/" or empty path)."""
    try:
        path = urlsplit((url or "").strip()).path
    except ValueError:
        return False
    return path in ("", "/")


def hostname_of(url: str) -> str:
    try:
        return (urlsplit((url or "").strip()).hostname or "").lower()
    except ValueError:
        return ""


def host_bucket(hostname: str) -> str:
    """Hostname as used in saved-page folder names: dots become underscores."""
    return hostname.lower().replace(".", "_")


def prefix_related(requested: str, stored: str) -> bool:
    """Loose match: either URL is a prefix of the other."""
    return requested.startswith(stored) or stored.startswith(requested)
