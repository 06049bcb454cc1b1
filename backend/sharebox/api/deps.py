from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Query, Request

from sharebox.services.lifecycle import ShareManager


def get_share_manager(request: Request) -> ShareManager:
    return request.app.state.share_manager


ShareManagerDep = Annotated[ShareManager, Depends(get_share_manager)]


class ShareCredentials:
    def __init__(self, password: str | None, access_token: str | None) -> None:
        self.password = password or None
        self.access_token = access_token or None


def get_share_credentials(
    x_share_password: str | None = Header(default=None),
    x_share_token: str | None = Header(default=None),
    token: str | None = Query(default=None),
) -> ShareCredentials:
    return ShareCredentials(password=x_share_password, access_token=x_share_token or token)


ShareCredentialsDep = Annotated[ShareCredentials, Depends(get_share_credentials)]
