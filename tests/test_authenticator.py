"""
Tests for Authenticator

Tests cover:
- Mode dispatch and missing configuration
- Managed identity token acquisition
- Certificate loading failures
"""

import pytest

from azure_inventory.auth import authenticator as auth_module
from azure_inventory.auth.authenticator import AuthenticationError, Authenticator
from azure_inventory.config import AuthConfig, CertificateAuth


class FakeManagedIdentityClient:
    last_identity = None
    result = {"access_token": "mi-token", "token_type": "Bearer"}

    def __init__(self, identity, http_client=None):
        FakeManagedIdentityClient.last_identity = identity
        http_client.close()

    def acquire_token_for_client(self, resource):
        assert resource == "https://management.azure.com"
        return self.result


@pytest.fixture
def managed_identity(monkeypatch):
    monkeypatch.setattr(auth_module.msal, "ManagedIdentityClient", FakeManagedIdentityClient)
    FakeManagedIdentityClient.result = {"access_token": "mi-token", "token_type": "Bearer"}
    return FakeManagedIdentityClient


class TestModes:
    async def test_unknown_mode(self):
        with pytest.raises(AuthenticationError, match="Unknown auth mode"):
            await Authenticator(AuthConfig(mode="kerberos")).acquire_token()

    async def test_certificate_mode_without_config(self):
        with pytest.raises(AuthenticationError, match="not provided"):
            await Authenticator(AuthConfig(mode="certificate")).acquire_token()

    async def test_delegated_mode_without_config(self):
        with pytest.raises(AuthenticationError, match="not provided"):
            await Authenticator(AuthConfig(mode="delegated")).acquire_token()


class TestManagedIdentity:
    async def test_system_assigned(self, managed_identity):
        auth = Authenticator(AuthConfig(mode="managed_identity"))

        assert await auth.acquire_token() == "mi-token"
        assert auth.access_token == "mi-token"
        assert managed_identity.last_identity["ManagedIdentityIdType"] == "SystemAssigned"

    async def test_user_assigned(self, managed_identity):
        config = AuthConfig(mode="managed_identity", managed_identity_client_id="mi-client")
        await Authenticator(config).acquire_token()

        assert managed_identity.last_identity["Id"] == "mi-client"

    async def test_error_response(self, managed_identity):
        managed_identity.result = {"error": "invalid_request", "error_description": "Identity not found"}

        with pytest.raises(AuthenticationError, match="Identity not found"):
            await Authenticator(AuthConfig(mode="managed_identity")).acquire_token()


class TestCertificate:
    def _config(self, path) -> AuthConfig:
        return AuthConfig(
            mode="certificate",
            certificate=CertificateAuth(
                tenant_id="t", client_id="c", certificate_path=str(path), certificate_password="pw",
            ),
        )

    async def test_missing_file(self, tmp_path):
        with pytest.raises(AuthenticationError, match="not found"):
            await Authenticator(self._config(tmp_path / "missing.b64")).acquire_token()

    async def test_unreadable_bundle(self, tmp_path):
        path = tmp_path / "cert.b64"
        path.write_text("bm90IGEgcGZ4")
        with pytest.raises(AuthenticationError, match="Failed to load certificate"):
            await Authenticator(self._config(path)).acquire_token()
