"""Minting of low-privilege user credentials.

A test identity consists of a User, an OAuthClient registration for the
harness and an OAuthAccessToken bound to both. The access token object is
stored under its *public* name, a SHA-256 digest of the private bearer
token, so the secret itself never reaches the control plane's storage.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass
from typing import Any

from .errors import ApiError, SetupError
from .kube import ClientConfig, ClientKind, new_client, turn_off_rate_limiting
from .kube import resources
from .ledger import ResourceLedger
from .shared.logging import get_logger
from .wait import poll_until

logger = get_logger(__name__)

SHA256_PREFIX = "sha256~"
TOKEN_BYTES = 32
TOKEN_SCOPES = ["user:full"]
TOKEN_REDIRECT_URI = "https://localhost:8443/oauth/token/implicit"
DEFAULT_CLIENT_NAME = "e2e-client"
ANONYMOUS_USER = "system:anonymous"

ACCESS_POLL_INTERVAL = 1.0
ACCESS_POLL_TIMEOUT = 60.0

ClientFactory = Callable[[ClientKind, ClientConfig], Any]


@dataclass(frozen=True)
class CredentialPair:
    """Private bearer token and the public name it is stored under."""

    private_token: str
    public_token: str


def _encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def hash_token(private_token: str) -> str:
    """Derive the public token name from a private token.

    Args:
        private_token: ``sha256~`` followed by the base64url payload

    Returns:
        ``sha256~`` followed by base64url(SHA-256(payload))
    """
    payload = private_token.removeprefix(SHA256_PREFIX)
    return SHA256_PREFIX + _encode(hashlib.sha256(payload.encode("ascii")).digest())


def generate_token_pair() -> CredentialPair:
    """Generate a fresh private/public token pair from a CSPRNG."""
    private_token = SHA256_PREFIX + _encode(secrets.token_bytes(TOKEN_BYTES))
    return CredentialPair(private_token=private_token, public_token=hash_token(private_token))


def self_access_review(namespace: str, verb: str, resource: str, group: str = "") -> dict[str, Any]:
    """Build a SelfSubjectAccessReview spec for a namespaced resource."""
    return {
        "resourceAttributes": {
            "namespace": namespace,
            "verb": verb,
            "group": group,
            "resource": resource,
        }
    }


def wait_for_access(
    client: Any,
    allowed: bool,
    review: dict[str, Any],
    interval: float = ACCESS_POLL_INTERVAL,
    timeout: float = ACCESS_POLL_TIMEOUT,
) -> None:
    """Poll access reviews until the answer matches ``allowed``.

    Args:
        client: AuthorizationV1Client acting as the identity under test
        allowed: Expected polarity of the review
        review: SelfSubjectAccessReview spec
        interval: Seconds between reviews
        timeout: Polling window in seconds

    Raises:
        WaitTimeoutError: If access never reached the expected state
        ApiError: If a review request fails
    """

    def _matches() -> bool:
        response = client.create_self_subject_access_review(review)
        return bool(response.get("status", {}).get("allowed", False)) == allowed

    poll_until(interval, timeout, _matches)


class CredentialMinter:
    """Create test users and bearer credentials for them.

    All created objects are registered with the ledger.
    """

    def __init__(
        self,
        admin_config: ClientConfig,
        ledger: ResourceLedger,
        client_factory: ClientFactory = new_client,
        client_name: str = DEFAULT_CLIENT_NAME,
    ):
        """Initialize minter.

        Args:
            admin_config: Privileged identity used to create the records
            ledger: Ledger receiving every created record
            client_factory: Builds typed clients (``new_client`` by default)
            client_name: Prefix of the OAuthClient registration name
        """
        self.admin_config = admin_config
        self.ledger = ledger
        self.client_factory = client_factory
        self.client_name = client_name

    def _ensure_user(self, username: str) -> dict[str, Any]:
        with closing(self.client_factory(ClientKind.USER, self.admin_config)) as users:
            try:
                return users.get_user(username)
            except ApiError as e:
                if not e.is_not_found:
                    raise
            user = users.create_user(name=username)
        self.ledger.add_object(resources.USERS, user)
        logger.info("created user", user=username)
        return user

    def _ensure_oauth_client(self, oauth: Any, name: str) -> None:
        try:
            oauth.create_oauth_client(name)
        except ApiError as e:
            if not e.is_already_exists:
                raise
            return
        self.ledger.add(resources.OAUTH_CLIENTS, "", name)

    def mint(self, username: str, namespace: str = "") -> ClientConfig:
        """Ensure ``username`` exists and return a config that acts as it.

        Args:
            username: User to act as
            namespace: Namespace the OAuth client registration is named after

        Returns:
            Anonymous copy of the admin config carrying the private bearer
            token, without throttling or request timeout

        Raises:
            SetupError: If any record cannot be created
        """
        oauth_client_name = f"{self.client_name}-{namespace}" if namespace else self.client_name
        try:
            user = self._ensure_user(username)
            pair = generate_token_pair()
            with closing(self.client_factory(ClientKind.OAUTH, self.admin_config)) as oauth:
                self._ensure_oauth_client(oauth, oauth_client_name)
                token = oauth.create_access_token(
                    name=pair.public_token,
                    client_name=oauth_client_name,
                    user_name=username,
                    user_uid=user.get("metadata", {}).get("uid", ""),
                    scopes=TOKEN_SCOPES,
                    redirect_uri=TOKEN_REDIRECT_URI,
                )
            self.ledger.add_object(resources.OAUTH_ACCESS_TOKENS, token)
        except ApiError as e:
            raise SetupError(f"unable to mint credentials for user {username!r}: {e}") from e

        logger.info("minted credentials", user=username, oauth_client=oauth_client_name)
        return turn_off_rate_limiting(self.admin_config).with_token(pair.private_token)

    def create_user(self, prefix: str, namespace: str = "") -> dict[str, Any]:
        """Create a user with a generated name and register it.

        Raises:
            SetupError: If the user cannot be created
        """
        with closing(self.client_factory(ClientKind.USER, self.admin_config)) as users:
            try:
                user = users.create_user(generate_name=prefix + namespace)
            except ApiError as e:
                raise SetupError(f"unable to create user with prefix {prefix!r}: {e}") from e
        self.ledger.add_object(resources.USERS, user)
        return user

    def _config_for(self, user: str, review: dict[str, Any], namespace: str) -> ClientConfig:
        if user == ANONYMOUS_USER:
            return self.admin_config.anonymous()
        if not namespace:
            namespace = review.get("resourceAttributes", {}).get("namespace", "")
        return self.mint(user, namespace)

    def wait_for_access_allowed(
        self, review: dict[str, Any], user: str, namespace: str = ""
    ) -> None:
        """Wait until ``user`` is allowed what ``review`` describes.

        Credentials for ``user`` are minted through the OAuth client of
        ``namespace``, which defaults to the namespace under review.
        """
        with closing(
            self.client_factory(ClientKind.AUTHORIZATION, self._config_for(user, review, namespace))
        ) as client:
            wait_for_access(client, True, review)

    def wait_for_access_denied(
        self, review: dict[str, Any], user: str, namespace: str = ""
    ) -> None:
        """Wait until ``user`` is denied what ``review`` describes."""
        with closing(
            self.client_factory(ClientKind.AUTHORIZATION, self._config_for(user, review, namespace))
        ) as client:
            wait_for_access(client, False, review)
