"""Authentication strategies for panel requests.

Panels forked from the same upstream project disagree on which header carries
the numeric user id, so a known id is sent under every alias at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..schemas.domain import AccountCredential, AuthType

USER_ID_HEADER_ALIASES: Tuple[str, ...] = (
    "New-API-User",
    "Veloera-User",
    "voapi-user",
    "User-id",
    "Rix-Api-User",
    "neo-api-user",
)


@dataclass(frozen=True)
class Identity:
    """Who a request is sent as.

    Attributes:
        auth_type: Strategy selecting which credential headers are emitted.
        access_token: Bearer token for ``AccessToken`` mode. May be absent for
            the other modes.
        cookie: Session cookie. Sent in ``Cookie`` mode and, when present,
            alongside the bearer token in ``AccessToken`` mode.
        user_id: Upstream numeric user id, broadcast under every alias.
    """

    auth_type: AuthType = AuthType.none
    access_token: Optional[str] = None
    cookie: Optional[str] = None
    user_id: Optional[int] = None

    @classmethod
    def from_credential(cls, credential: AccountCredential) -> "Identity":
        return cls(
            auth_type=credential.auth_type,
            access_token=credential.access_token,
            cookie=credential.cookie,
            user_id=credential.user_id,
        )

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls()

    def with_auth_type(self, auth_type: AuthType) -> "Identity":
        return Identity(
            auth_type=auth_type,
            access_token=self.access_token,
            cookie=self.cookie,
            user_id=self.user_id,
        )

    def headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.auth_type == AuthType.access_token:
            if self.access_token:
                headers["Authorization"] = f"Bearer {self.access_token}"
            if self.cookie:
                headers["Cookie"] = self.cookie
        elif self.auth_type == AuthType.cookie:
            if self.cookie:
                headers["Cookie"] = self.cookie
        if self.user_id is not None:
            uid = str(self.user_id)
            for name in USER_ID_HEADER_ALIASES:
                headers[name] = uid
        return headers
