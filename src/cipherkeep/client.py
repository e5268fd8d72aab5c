# Cipherkeep - Vault API Client
#
# Thin async HTTP layer around the crypto core.  Sequencing:
#   register: new salt -> auth hash -> POST /auth/register -> unlock session
#   login:    POST /auth/prelogin (salt, iterations) -> auth hash
#             -> POST /auth/login -> unlock session with encryptionParams
#   vault:    seal before POST/PUT, open after GET (batch continues past
#             items that fail to decrypt)
#
# The master password and encryption key never leave this process; only
# the auth hash, salt and iteration count are sent.

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .config import DEFAULT_AUTH_ITERATIONS, get_settings
from .core import EventSeverity, EventType, get_audit_logger
from .crypto.kdf import KeyDerivationParams, derive_auth_hash_async
from .session import VaultSession
from .vault.items import (
    ItemType,
    OpenedItem,
    VaultItemPlaintext,
    VaultRecord,
    build_metadata,
    open_record,
    open_records,
    seal_item,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Cipherkeep/0.1"


def _path_segment(value: Any) -> str:
    """Escape one URL path segment; ``/`` is encoded too."""
    text = str(value)
    if text in ("", ".", ".."):
        raise ValueError(f"Invalid path segment: {text!r}")
    return quote(text, safe="")


class VaultApiError(Exception):
    """Raised when the vault API returns an error response"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass
class MfaChallenge:
    """Returned by ``login`` when the server wants a second factor."""

    user_id: str
    mfa_method: str


class VaultApiClient:
    """Async client for the vault API.

    Usage::

        async with VaultApiClient("https://vault.example/api") as client:
            await client.login("alice@example.com", master_password)
            items = await client.list_items()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[VaultSession] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        key_iterations: Optional[int] = None,
        auth_iterations: Optional[int] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.session = session or VaultSession()
        self.key_iterations = key_iterations or settings.key_iterations
        self.auth_iterations = auth_iterations or settings.auth_iterations or DEFAULT_AUTH_ITERATIONS
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout or settings.request_timeout,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        self.token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        self._audit = get_audit_logger()

    async def __aenter__(self) -> "VaultApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Lock the session and close the HTTP connection pool."""
        self.session.lock(reason="client_closed")
        await self._http.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _request(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        try:
            resp = await self._http.request(method, path, json=json, headers=self._headers())
        except httpx.HTTPError as exc:
            raise VaultApiError(f"{method} {path} failed: {exc}") from exc

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning("%s %s returned %d", method, path, resp.status_code)
            raise VaultApiError(
                message or f"{method} {path} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                payload=data,
            )
        return data if isinstance(data, dict) else {"data": data}

    def _store_auth(self, data: Dict[str, Any]) -> None:
        self.token = data.get("token")
        self.refresh_token = data.get("refreshToken")
        self.user = data.get("user")

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        password_hint: str = "",
    ) -> Dict[str, Any]:
        """Create an account; the session is unlocked on success."""
        params = KeyDerivationParams.new(iterations=self.key_iterations)
        auth_hash = await derive_auth_hash_async(password, params.salt, self.auth_iterations)

        data = await self._request("POST", "/auth/register", json={
            "email": email,
            "authHash": auth_hash,
            **params.to_dict(),
            "firstName": first_name,
            "lastName": last_name,
            "passwordHint": password_hint,
        })
        self._store_auth(data)

        self._audit.log_event(
            event_type=EventType.API_REGISTER,
            severity=EventSeverity.INFO,
            message="Account registered",
            user_context={"email": email},
        )

        await self.session.unlock(password, params)
        return data

    async def prelogin(self, email: str) -> KeyDerivationParams:
        """Fetch the account's stored salt and iteration count."""
        data = await self._request("POST", "/auth/prelogin", json={"email": email})
        return KeyDerivationParams.from_dict(data)

    async def login(self, email: str, password: str) -> Optional[MfaChallenge]:
        """
        Authenticate and unlock the session.

        Returns:
            None when logged in, or an ``MfaChallenge`` to finish with
            ``verify_mfa``.
        """
        params = await self.prelogin(email)
        auth_hash = await derive_auth_hash_async(password, params.salt, self.auth_iterations)

        data = await self._request("POST", "/auth/login", json={
            "email": email,
            "authHash": auth_hash,
        })

        if data.get("mfaRequired"):
            return MfaChallenge(user_id=str(data.get("userId", "")), mfa_method=data.get("mfaMethod", "totp"))

        await self._complete_login(data, password, params, email)
        return None

    async def verify_mfa(
        self,
        challenge: MfaChallenge,
        code: str,
        password: str,
    ) -> None:
        """Finish an MFA login; the master password is needed to derive the key."""
        data = await self._request("POST", "/auth/verify-mfa", json={
            "userId": challenge.user_id,
            "mfaCode": code,
            "mfaMethod": challenge.mfa_method,
        })
        await self._complete_login(data, password, None, None)

    async def _complete_login(
        self,
        data: Dict[str, Any],
        password: str,
        fallback: Optional[KeyDerivationParams],
        email: Optional[str],
    ) -> None:
        self._store_auth(data)
        if data.get("encryptionParams"):
            params = KeyDerivationParams.from_dict(data["encryptionParams"])
        elif fallback is not None:
            params = fallback
        else:
            raise VaultApiError("Login response is missing encryptionParams", payload=data)

        self._audit.log_event(
            event_type=EventType.API_LOGIN,
            severity=EventSeverity.INFO,
            message="Logged in",
            user_context={"email": email or (self.user or {}).get("email")},
        )
        await self.session.unlock(password, params)

    async def logout(self) -> None:
        """Lock the session first, then revoke the refresh token server-side."""
        self.session.lock(reason="logout")
        refresh_token = self.refresh_token
        try:
            if self.token:
                await self._request("POST", "/auth/logout", json={"refreshToken": refresh_token})
        except VaultApiError as exc:
            logger.warning("Server logout failed: %s", exc)
        finally:
            self.token = None
            self.refresh_token = None
            self.user = None
            self._audit.log_event(
                event_type=EventType.API_LOGOUT,
                severity=EventSeverity.INFO,
                message="Logged out",
            )

    # ------------------------------------------------------------------
    # Vault items
    # ------------------------------------------------------------------

    async def list_items(self) -> List[OpenedItem]:
        data = await self._request("GET", "/vault")
        records = [VaultRecord.from_api(d) for d in data.get("vaultItems", [])]
        return open_records(records, self.session)

    async def list_items_by_domain(self, domain: str) -> List[OpenedItem]:
        data = await self._request("GET", f"/vault/domain/{_path_segment(domain)}")
        records = [VaultRecord.from_api(d) for d in data.get("vaultItems", [])]
        return open_records(records, self.session)

    async def get_item(self, item_id: str) -> OpenedItem:
        data = await self._request("GET", f"/vault/{_path_segment(item_id)}")
        return open_record(VaultRecord.from_api(data.get("vaultItem", {})), self.session)

    async def create_item(
        self,
        item: VaultItemPlaintext,
        item_type: str = ItemType.LOGIN.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VaultRecord:
        encrypted = seal_item(item, self.session)
        data = await self._request("POST", "/vault", json={
            "encryptedData": encrypted,
            "itemType": item_type,
            "metadata": metadata if metadata is not None else build_metadata(item),
        })
        return VaultRecord.from_api(data.get("vaultItem", {}))

    async def update_item(
        self,
        item_id: str,
        item: VaultItemPlaintext,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VaultRecord:
        encrypted = seal_item(item, self.session)
        payload: Dict[str, Any] = {"encryptedData": encrypted}
        if metadata is not None:
            payload["metadata"] = metadata
        data = await self._request("PUT", f"/vault/{_path_segment(item_id)}", json=payload)
        return VaultRecord.from_api(data.get("vaultItem", {}))

    async def delete_item(self, item_id: str) -> None:
        await self._request("DELETE", f"/vault/{_path_segment(item_id)}")
