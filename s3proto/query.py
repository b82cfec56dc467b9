"""Query-string and path encoding using the AWS URI rules.

AWS expects every byte outside ``A-Z a-z 0-9 - _ . ~`` to be percent
encoded with uppercase hex digits; spaces become ``%20``, never ``+``.
"""

from typing import Optional
from urllib.parse import quote


def aws_uri_encode(text: str, encode_slash: bool = True) -> str:
    """Percent-encode ``text`` for use in a signed URL."""
    return quote(text, safe="-_.~" if encode_slash else "/-_.~")


def encode_path(path: str) -> str:
    """Encode an object path, keeping ``/`` separators."""
    return aws_uri_encode(path, encode_slash=False)


class QueryParams:
    """Ordered multi-map of query parameters.

    Repeated names keep their insertion order, which the signer relies on
    when it stable-sorts parameters by name.
    """

    def __init__(self):
        self._params: dict[str, list[str]] = {}

    def add(self, name: str, value: str = "") -> "QueryParams":
        self._params.setdefault(name, []).append(value)
        return self

    def add_if_not_empty(self, name: str, value: Optional[str]) -> "QueryParams":
        if value:
            self.add(name, value)
        return self

    def get(self, name: str) -> list[str]:
        return list(self._params.get(name, []))

    def __contains__(self, name: str) -> bool:
        return name in self._params

    def __bool__(self) -> bool:
        return bool(self._params)

    def encode(self) -> str:
        """Render as ``name=value&...`` (no leading ``?``)."""
        items = []
        for name, values in self._params.items():
            encoded_name = aws_uri_encode(name)
            for value in values:
                items.append(f"{encoded_name}={aws_uri_encode(value)}")
        return "&".join(items)

    def __str__(self) -> str:
        encoded = self.encode()
        return f"?{encoded}" if encoded else ""
