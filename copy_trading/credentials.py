"""
Copy Trading - Credential Provider.

============================================================
PURPOSE
============================================================
"Given a follower account, obtain a valid bearer credential."

Token issuance and refresh are handled outside this package;
providers only read what is stored and refuse to hand out
credentials that cannot work.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from .repository import CopyTradeRepository
from .types import BrokerCredential, FollowerAccount, CredentialError


logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """Source of bearer credentials for follower accounts."""

    @abstractmethod
    async def get_credential(self, follower: FollowerAccount) -> BrokerCredential:
        """
        Get the credential for a follower.

        Raises:
            CredentialError: No usable credential
        """
        pass


class StoredCredentialProvider(CredentialProvider):
    """Reads session tokens from the broker_credentials table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_credential(self, follower: FollowerAccount) -> BrokerCredential:
        async with self._session_factory() as session:
            model = await CopyTradeRepository(session).get_credential(follower.credential_id)

        if model is None:
            raise CredentialError(
                f"Broker credential {follower.credential_id} not found"
            )
        if not model.is_active:
            raise CredentialError(
                f"Broker credential {follower.credential_id} is inactive"
            )
        if not model.session_token:
            raise CredentialError("No session token available")

        credential = BrokerCredential(
            credential_id=model.id,
            broker_type=model.broker_type,
            access_token=model.session_token,
            expires_at=model.expiry,
        )
        if credential.is_expired():
            raise CredentialError("Session token expired")
        return credential


class StaticCredentialProvider(CredentialProvider):
    """Credentials held in memory, keyed by credential id."""

    def __init__(
        self,
        credentials: Optional[Dict[int, BrokerCredential]] = None,
        default_token: Optional[str] = None,
    ):
        self._credentials = dict(credentials or {})
        self._default_token = default_token

    def set(self, credential: BrokerCredential) -> None:
        self._credentials[credential.credential_id] = credential

    async def get_credential(self, follower: FollowerAccount) -> BrokerCredential:
        credential = self._credentials.get(follower.credential_id)
        if credential is None and self._default_token is not None:
            credential = BrokerCredential(
                credential_id=follower.credential_id,
                broker_type=follower.broker_type,
                access_token=self._default_token,
            )
        if credential is None or not credential.access_token:
            raise CredentialError(
                f"No credential for broker credential {follower.credential_id}"
            )
        if credential.is_expired():
            raise CredentialError("Session token expired")
        return credential
