"""Unit tests for credential minting."""

from __future__ import annotations

import base64
import hashlib

import pytest

from tenant_harness.credentials import (
    SHA256_PREFIX,
    TOKEN_REDIRECT_URI,
    CredentialMinter,
    generate_token_pair,
    hash_token,
    self_access_review,
    wait_for_access,
)
from tenant_harness.errors import ApiError, SetupError, WaitTimeoutError
from tenant_harness.kube import ClientKind, resources
from tenant_harness.ledger import ResourceLedger


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


class TestTokenPair:
    """Tests for token pair generation."""

    def test_public_token_is_hash_of_private_payload(self):
        pair = generate_token_pair()

        payload = pair.private_token[len(SHA256_PREFIX) :]
        expected = SHA256_PREFIX + _b64(hashlib.sha256(payload.encode()).digest())

        assert pair.public_token == expected
        assert hash_token(pair.private_token) == pair.public_token

    def test_tokens_carry_prefix(self):
        pair = generate_token_pair()

        assert pair.private_token.startswith("sha256~")
        assert pair.public_token.startswith("sha256~")
        assert "=" not in pair.private_token
        assert "=" not in pair.public_token

    def test_payload_has_enough_entropy(self):
        pair = generate_token_pair()

        # 32 random bytes encode to 43 base64url characters
        assert len(pair.private_token) == len(SHA256_PREFIX) + 43

    def test_pairs_are_unique(self):
        pairs = [generate_token_pair() for _ in range(200)]

        assert len({p.private_token for p in pairs}) == 200
        assert len({p.public_token for p in pairs}) == 200

    def test_other_private_token_does_not_match(self):
        first, second = generate_token_pair(), generate_token_pair()

        assert hash_token(second.private_token) != first.public_token


@pytest.fixture
def ledger() -> ResourceLedger:
    return ResourceLedger()


@pytest.fixture
def minter(admin_config, ledger, fake_clients) -> CredentialMinter:
    return CredentialMinter(admin_config, ledger, client_factory=fake_clients)


class TestMint:
    """Tests for CredentialMinter.mint."""

    def test_mint_creates_missing_user(self, minter, fake_clients, ledger):
        users = fake_clients[ClientKind.USER]
        users.get_user.side_effect = ApiError("not found", status_code=404)
        users.create_user.return_value = {"metadata": {"name": "alice", "uid": "uid-alice"}}
        oauth = fake_clients[ClientKind.OAUTH]
        oauth.create_access_token.side_effect = lambda **kw: {"metadata": {"name": kw["name"]}}

        config = minter.mint("alice", "e2e-test-ns")

        users.create_user.assert_called_once_with(name="alice")
        oauth.create_oauth_client.assert_called_once_with("e2e-client-e2e-test-ns")
        token_kwargs = oauth.create_access_token.call_args.kwargs
        assert token_kwargs["user_name"] == "alice"
        assert token_kwargs["user_uid"] == "uid-alice"
        assert token_kwargs["client_name"] == "e2e-client-e2e-test-ns"
        assert token_kwargs["scopes"] == ["user:full"]
        assert token_kwargs["redirect_uri"] == TOKEN_REDIRECT_URI
        assert hash_token(config.bearer_token) == token_kwargs["name"]

        kinds = [ref.resource for ref in ledger]
        assert kinds == [resources.USERS, resources.OAUTH_CLIENTS, resources.OAUTH_ACCESS_TOKENS]

    def test_existing_user_is_not_registered(self, minter, ready_clients, ledger):
        minter.mint("existing")

        ready_clients[ClientKind.USER].create_user.assert_not_called()
        assert resources.USERS not in [ref.resource for ref in ledger]

    def test_existing_oauth_client_is_tolerated(self, minter, ready_clients, ledger):
        ready_clients[ClientKind.OAUTH].create_oauth_client.side_effect = ApiError(
            "exists", status_code=409
        )

        minter.mint("existing")

        assert [ref.resource for ref in ledger] == [resources.OAUTH_ACCESS_TOKENS]

    def test_config_is_unthrottled_token_identity(self, minter, ready_clients, admin_config):
        config = minter.mint("existing")

        assert config.host == admin_config.host
        assert config.bearer_token != admin_config.bearer_token
        assert config.bearer_token.startswith("sha256~")
        assert config.qps is None
        assert config.burst is None
        assert config.timeout is None
        assert config.cert_file is None

    def test_user_lookup_error_is_fatal(self, minter, fake_clients):
        fake_clients[ClientKind.USER].get_user.side_effect = ApiError("denied", status_code=403)

        with pytest.raises(SetupError, match="alice"):
            minter.mint("alice")

    def test_token_creation_error_is_fatal(self, minter, ready_clients):
        ready_clients[ClientKind.OAUTH].create_access_token.side_effect = ApiError(
            "invalid", status_code=422
        )

        with pytest.raises(SetupError) as exc_info:
            minter.mint("existing")

        assert isinstance(exc_info.value.__cause__, ApiError)

    def test_clients_use_admin_identity(self, minter, ready_clients, admin_config):
        minter.mint("existing")

        assert ready_clients.configs_for(ClientKind.USER) == [admin_config]
        assert ready_clients.configs_for(ClientKind.OAUTH) == [admin_config]

    def test_create_user_with_generated_name(self, minter, fake_clients, ledger):
        users = fake_clients[ClientKind.USER]
        users.create_user.return_value = {"metadata": {"name": "dev-ns1abcde"}}

        user = minter.create_user("dev-", "ns1")

        users.create_user.assert_called_once_with(generate_name="dev-ns1")
        assert user["metadata"]["name"] == "dev-ns1abcde"
        assert [ref.name for ref in ledger] == ["dev-ns1abcde"]


class TestAccessWaits:
    """Tests for SelfSubjectAccessReview polling."""

    def test_review_spec(self):
        review = self_access_review("ns1", "create", "pods")

        assert review["resourceAttributes"] == {
            "namespace": "ns1",
            "verb": "create",
            "group": "",
            "resource": "pods",
        }

    def test_wait_until_allowed(self, fake_clients):
        authz = fake_clients[ClientKind.AUTHORIZATION]
        authz.create_self_subject_access_review.side_effect = [
            {"status": {"allowed": False}},
            {"status": {"allowed": True}},
        ]

        wait_for_access(authz, True, self_access_review("ns1", "get", "pods"), 0.001, 1)

        assert authz.create_self_subject_access_review.call_count == 2

    def test_wait_until_denied_times_out(self, fake_clients):
        authz = fake_clients[ClientKind.AUTHORIZATION]
        authz.create_self_subject_access_review.return_value = {"status": {"allowed": True}}

        with pytest.raises(WaitTimeoutError):
            wait_for_access(authz, False, self_access_review("ns1", "get", "pods"), 0.01, 0.03)

    def test_anonymous_user_uses_anonymous_config(self, minter, fake_clients, admin_config):
        fake_clients[ClientKind.AUTHORIZATION].create_self_subject_access_review.return_value = {
            "status": {"allowed": False}
        }

        minter.wait_for_access_denied(self_access_review("ns1", "get", "pods"), "system:anonymous")

        config = fake_clients.configs_for(ClientKind.AUTHORIZATION)[0]
        assert config.bearer_token is None
        assert config.host == admin_config.host
        fake_clients[ClientKind.OAUTH].create_access_token.assert_not_called()

    def test_named_user_gets_minted_credentials(self, minter, ready_clients):
        minter.wait_for_access_allowed(self_access_review("ns1", "get", "pods"), "existing")

        config = ready_clients.configs_for(ClientKind.AUTHORIZATION)[0]
        assert config.bearer_token.startswith("sha256~")

    def test_access_wait_registers_namespace_client(self, minter, ready_clients):
        minter.wait_for_access_allowed(self_access_review("ns1", "get", "pods"), "existing")

        ready_clients[ClientKind.OAUTH].create_oauth_client.assert_called_once_with(
            "e2e-client-ns1"
        )

    def test_access_wait_explicit_namespace(self, minter, ready_clients):
        ready_clients[ClientKind.AUTHORIZATION].create_self_subject_access_review.return_value = {
            "status": {"allowed": False}
        }

        minter.wait_for_access_denied(
            self_access_review("other", "get", "pods"), "existing", namespace="ns1"
        )

        ready_clients[ClientKind.OAUTH].create_oauth_client.assert_called_once_with(
            "e2e-client-ns1"
        )
