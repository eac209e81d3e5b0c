"""
User model and its external identity bindings.
"""

from typing import List, Optional

from pydantic import Field

from .base import Document, StoredModel


class ShibbolethAuth(StoredModel):
    uiucedu_uin: Optional[str] = None
    email: Optional[str] = None
    uiucedu_is_member_of: List[str] = Field(default_factory=list)


class User(Document):
    """
    A person known to the backend.

    App users are bound by external_id (the campus UIN) and a client-generated
    uuid/public key; admin users exist only through their shibboleth binding.
    """

    shibboleth_auth: Optional[ShibbolethAuth] = None
    external_id: Optional[str] = None
    uuid: str = ""
    public_key: str = ""
    consent: bool = False
    exposure_notification: bool = False
    re_post: bool = False
    encrypted_key: Optional[str] = None
    encrypted_blob: Optional[str] = None
