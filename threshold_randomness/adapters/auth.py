"""
threshold_randomness.adapters.auth
----------------------------------

Bearer-token authentication for the caller-bound HTTP endpoints.

Endpoints that act on behalf of an address (request randomness, request a
signature, fulfill) never take that address from the request body. Instead
the token in ``Authorization: Bearer <token>`` is looked up in a
:class:`TokenStore` and the address it is bound to becomes the caller.
Read-only endpoints stay open.

Token sources
-------------
1) TRAND_AUTH_TOKEN_FILE   : newline-delimited "token,address"; '#' comments allowed.
2) TRAND_AUTH_TOKENS_JSON  : JSON object mapping token -> address.
3) Both may be provided; JSON overrides file entries with the same token.

An empty store authenticates nobody, so every caller-bound endpoint answers
401 until tokens are configured.
"""

from __future__ import annotations

import json
import os
from typing import Callable, Dict, Mapping, Optional

from fastapi import HTTPException, Request, status

from ..types.core import Address, normalize_address


class TokenStore:
    """In-memory mapping from API token to the address it authenticates."""

    def __init__(self, mapping: Optional[Mapping[str, Address]] = None) -> None:
        self._map: Dict[str, Address] = {}
        for token, address in (mapping or {}).items():
            if not token:
                raise ValueError("empty API token")
            self._map[token] = normalize_address(address)

    def __len__(self) -> int:
        return len(self._map)

    @classmethod
    def from_environ(cls) -> "TokenStore":
        mapping: Dict[str, Address] = {}

        file_path = os.getenv("TRAND_AUTH_TOKEN_FILE")
        if file_path:
            with open(file_path, "r", encoding="utf-8") as f:
                for lineno, raw in enumerate(f, 1):
                    line = raw.strip()
                    if not line or line.startswith("#"):
                        continue
                    parts = [p.strip() for p in line.split(",")]
                    if len(parts) != 2 or not parts[0]:
                        raise ValueError(f"{file_path}:{lineno}: expected 'token,address'")
                    mapping[parts[0]] = parts[1]

        raw_json = os.getenv("TRAND_AUTH_TOKENS_JSON")
        if raw_json:
            obj = json.loads(raw_json)
            if not isinstance(obj, dict):
                raise ValueError("TRAND_AUTH_TOKENS_JSON must be a JSON object of token -> address")
            mapping.update(obj)

        return cls(mapping)

    def check(self, token: Optional[str]) -> Optional[Address]:
        if not token:
            return None
        return self._map.get(token)


def token_from_request(request: Request) -> Optional[str]:
    """Extract the token from ``Authorization: Bearer <token>``."""
    auth = request.headers.get("authorization")
    if auth:
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
    return None


def caller_dependency(store: TokenStore) -> Callable[[Request], Address]:
    """FastAPI dependency resolving the authenticated caller address, or 401."""

    def _caller(request: Request) -> Address:
        caller = store.check(token_from_request(request))
        if caller is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing or invalid API token",
                headers={"WWW-Authenticate": 'Bearer realm="trand"'},
            )
        request.state.caller = caller
        return caller

    return _caller


__all__ = ["TokenStore", "token_from_request", "caller_dependency"]
