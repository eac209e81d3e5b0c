"""
User repository.
"""

import logging
from typing import List, Optional

from pymongo.client_session import ClientSession

from src.common.error_handling import NotFoundError

from ..database import Collections
from ..models import ShibbolethAuth, User
from .base import MongoEntityRepository

logger = logging.getLogger(__name__)


class UserRepository(MongoEntityRepository[User]):
    collection_name = Collections.USERS
    model = User
    kind = "user"

    def find_by_external_id(self, external_id: str, session: Optional[ClientSession] = None) -> User:
        """
        Find a user by external id (the campus UIN for app users).

        Raises:
            NotFoundError: If no user has this external id
        """
        document = self.collection.find_one({"external_id": external_id}, session=session)
        if document is None:
            raise NotFoundError(self.kind, external_id, f"no user with external id {external_id}")
        return self._to_entity(document)

    def find_by_shibboleth_uin(self, uin: str) -> User:
        document = self.collection.find_one({"shibboleth_auth.uiucedu_uin": uin})
        if document is None:
            raise NotFoundError(self.kind, uin, f"no user with shibboleth uin {uin}")
        return self._to_entity(document)

    def find_by_re_post(self, re_post: bool) -> List[User]:
        return self.find_many({"re_post": re_post})

    def create_app_user(
        self,
        shibboleth_auth: Optional[ShibbolethAuth],
        external_id: str,
        uuid: str = "",
        public_key: str = "",
        consent: bool = False,
        exposure_notification: bool = False,
        re_post: bool = False,
        encrypted_key: Optional[str] = None,
        encrypted_blob: Optional[str] = None,
    ) -> User:
        """
        Create a user registered from the mobile app.

        Raises:
            DuplicateKeyError: If a user with this external id exists
        """
        user = User(
            shibboleth_auth=shibboleth_auth,
            external_id=external_id,
            uuid=uuid,
            public_key=public_key,
            consent=consent,
            exposure_notification=exposure_notification,
            re_post=re_post,
            encrypted_key=encrypted_key,
            encrypted_blob=encrypted_blob,
        )
        return self.create(user)

    def create_admin_user(self, shibboleth_auth: ShibbolethAuth, external_id: str, **fields) -> User:
        """
        Create a user on behalf of an administrator (first shibboleth login
        to the admin client). Same shape as an app user.

        Raises:
            DuplicateKeyError: If a user with this external id exists
        """
        created = self.create_app_user(shibboleth_auth, external_id, **fields)
        logger.info(f"Created admin user {created.id}")
        return created
