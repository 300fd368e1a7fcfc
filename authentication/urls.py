from __future__ import annotations

import re
import urllib.parse

_CODE_PATTERN = re.compile(r"(?:^|[#?&])code=([^&#]*)")


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def redirect_params(url: str, response_mode: str) -> dict[str, str]:
    """Parameters the provider put on the redirect URI.

    Fragment mode reads after ``#`` and query mode after ``?``.
    """
    parsed = urllib.parse.urlparse(url)
    raw = parsed.fragment if response_mode == "fragment" else parsed.query
    return {key: values[0] for key, values in urllib.parse.parse_qs(raw).items()}


def extract_authorization_code(url: str, response_mode: str) -> str | None:
    params = redirect_params(url, response_mode)
    if params.get("code"):
        return params["code"]

    match = _CODE_PATTERN.search(url)
    if match is None or not match.group(1):
        return None
    return urllib.parse.unquote(match.group(1))
