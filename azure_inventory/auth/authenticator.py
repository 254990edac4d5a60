"""
Authentication module — certificate, delegated device-code and managed identity auth.
Uses MSAL for token acquisition against the Microsoft identity platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

import httpx
import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption

from ..config import ARM_BASE_URL, ARM_SCOPE, AuthConfig

logger = logging.getLogger("azure_inventory.auth")

APP_SCOPES = [ARM_SCOPE]


class AuthenticationError(Exception):
    """Raised when authentication fails or no credential is available."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for Azure Resource Manager.
    Supports:
      - Certificate-based app-only authentication
      - Delegated authentication (device code flow)
      - Managed identity (system- or user-assigned)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None

    async def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        elif self.config.mode == "managed_identity":
            return self._acquire_managed_identity_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("AZURE_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                cert_bytes = base64.b64decode(f.read().strip())

            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                cert_bytes, password.encode("utf-8") if password else None
            )
            if private_key is None or certificate is None:
                raise AuthenticationError(f"Certificate bundle is incomplete: {cert_path}")

            private_key_pem = private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ).decode("utf-8")
            thumbprint = certificate.fingerprint(SHA1()).hex()
            logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")

        except FileNotFoundError:
            raise AuthenticationError(f"Certificate file not found: {cert_path}")
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )
        result = app.acquire_token_for_client(scopes=APP_SCOPES)
        return self._accept(result, "Certificate")

    def _acquire_delegated_token(self) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        logger.info("Initiating device code authentication flow...")

        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
        )

        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)
        return self._accept(result, "Delegated")

    def _acquire_managed_identity_token(self) -> str:
        """Acquire token from the host's managed identity endpoint."""
        logger.info("Authenticating with managed identity...")
        if self.config.managed_identity_client_id:
            identity = msal.UserAssignedManagedIdentity(
                client_id=self.config.managed_identity_client_id
            )
        else:
            identity = msal.SystemAssignedManagedIdentity()

        app = msal.ManagedIdentityClient(identity, http_client=httpx.Client())
        try:
            result = app.acquire_token_for_client(resource=ARM_BASE_URL)
        except Exception as e:
            raise AuthenticationError(f"Managed identity endpoint unavailable: {e}")
        return self._accept(result, "Managed identity")

    def _accept(self, result: dict, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token
