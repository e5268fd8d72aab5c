# Cipherkeep - Vault Items
#
# Plaintext vault records and their server-side form:
#   VaultItemPlaintext  -> JSON payload -> envelope (encryptedData)
#   VaultRecord         -> { id, encryptedData, itemType, metadata, ... }
#
# Only encryptedData ever passes through the crypto core.  metadata
# (domain, display name, favorite, tags) stays plaintext so the server
# can search and sort without decrypting.

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from ..core import EventSeverity, EventType, get_audit_logger
from ..crypto.exceptions import AuthenticationFailure, MalformedEnvelope
from ..session import VaultSession

logger = logging.getLogger(__name__)


class ItemType(str, Enum):
    LOGIN = "login"
    CARD = "card"
    IDENTITY = "identity"
    SECURE_NOTE = "secure_note"
    DOCUMENT = "document"


class AuthMethod(str, Enum):
    """Second factor configured on the stored account."""
    NONE = "none"
    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"


# payload key -> attribute name
_PAYLOAD_FIELDS = {
    "url": "url",
    "username": "username",
    "password": "password",
    "notes": "notes",
    "authMethod": "auth_method",
    "totpSecret": "totp_secret",
    "authDetails": "auth_details",
    "recoveryCodesStr": "recovery_codes",
    "authBackupEmail": "auth_backup_email",
}


@dataclass
class VaultItemPlaintext:
    """Decrypted contents of one vault item; lives only in memory."""

    url: str = ""
    username: str = ""
    password: str = ""
    notes: str = ""
    auth_method: str = AuthMethod.NONE.value
    totp_secret: str = ""
    auth_details: str = ""
    recovery_codes: str = ""
    auth_backup_email: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"VaultItemPlaintext(url={self.url!r}, username={self.username!r})"

    @property
    def has_two_factor(self) -> bool:
        return self.auth_method != AuthMethod.NONE.value

    def to_payload(self) -> Dict[str, Any]:
        """JSON object exchanged with every other client (camelCase keys)."""
        payload = dict(self.extra)
        for key, attr in _PAYLOAD_FIELDS.items():
            payload[key] = getattr(self, attr)
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "VaultItemPlaintext":
        """Rebuild from a decrypted payload; unknown keys go to ``extra``."""
        if not isinstance(payload, dict):
            raise ValueError(f"Vault item payload must be an object; got {type(payload).__name__}")
        known = {attr: payload[key] for key, attr in _PAYLOAD_FIELDS.items() if key in payload}
        extra = {k: v for k, v in payload.items() if k not in _PAYLOAD_FIELDS}
        auth_method = known.get("auth_method") or AuthMethod.NONE.value
        known["auth_method"] = auth_method
        return cls(extra=extra, **known)


def domain_from_url(url: str) -> str:
    """Host part of a URL for searchable metadata (never the full URL)."""
    if not url:
        return ""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = (parsed.hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def build_metadata(
    item: VaultItemPlaintext,
    name: str = "",
    favorite: bool = False,
    tags: Optional[List[str]] = None,
    color: str = "",
) -> Dict[str, Any]:
    """Plaintext metadata for a record; derived fields are non-sensitive."""
    domain = domain_from_url(item.url)
    return {
        "domain": domain,
        "name": name or domain,
        "favorite": favorite,
        "color": color,
        "tags": list(tags or []),
    }


@dataclass
class VaultRecord:
    """One vault item as the server stores it (opaque to the server)."""

    id: str
    encrypted_data: str
    item_type: str = ItemType.LOGIN.value
    metadata: Dict[str, Any] = field(default_factory=dict)
    version: int = 1
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "VaultRecord":
        return cls(
            id=str(d.get("_id") or d.get("id") or ""),
            encrypted_data=d.get("encryptedData", ""),
            item_type=d.get("itemType", ItemType.LOGIN.value),
            metadata=d.get("metadata") or {},
            version=d.get("version", 1),
            created_at=d.get("createdAt", ""),
            updated_at=d.get("updatedAt", ""),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "encryptedData": self.encrypted_data,
            "itemType": self.item_type,
            "metadata": self.metadata,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class OpenedItem:
    """A record after decryption: the item, or an explicit failure marker."""

    record: VaultRecord
    item: Optional[VaultItemPlaintext] = None
    error: Optional[str] = None

    @property
    def failed_to_decrypt(self) -> bool:
        return self.item is None

    def to_dict(self) -> Dict[str, Any]:
        """Display form: decrypted fields merged with record metadata."""
        d: Dict[str, Any] = {
            "id": self.record.id,
            "itemType": self.record.item_type,
            "metadata": self.record.metadata,
            "createdAt": self.record.created_at,
            "updatedAt": self.record.updated_at,
        }
        if self.item is None:
            d["failedToDecrypt"] = True
        else:
            d.update(self.item.to_payload())
        return d


def seal_item(item: VaultItemPlaintext, session: VaultSession) -> str:
    """Encrypt an item into the ``encryptedData`` envelope."""
    return session.encrypt(item.to_payload())


def _mark_failed(record: VaultRecord, reason: str) -> OpenedItem:
    get_audit_logger().log_event(
        event_type=EventType.ITEM_DECRYPT_FAILED,
        severity=EventSeverity.INVESTIGATE,
        message="Vault item could not be decrypted",
        details={"item_id": record.id, "reason": reason},
    )
    return OpenedItem(record=record, error=reason)


def open_record(record: VaultRecord, session: VaultSession) -> OpenedItem:
    """Decrypt one record; a bad envelope gives a failure marker, not an exception."""
    try:
        payload = session.decrypt(record.encrypted_data)
    except (AuthenticationFailure, MalformedEnvelope) as exc:
        return _mark_failed(record, type(exc).__name__)
    try:
        return OpenedItem(record=record, item=VaultItemPlaintext.from_payload(payload))
    except (TypeError, ValueError):
        return _mark_failed(record, "InvalidPayload")


def open_records(records: Iterable[VaultRecord], session: VaultSession) -> List[OpenedItem]:
    """
    Decrypt a batch of records, continuing past failures.

    Each bad record becomes an ``OpenedItem`` with ``failed_to_decrypt``
    set; the rest of the batch is unaffected.

    Raises:
        VaultLocked: The session has no key
    """
    records = list(records)
    outcomes = session.decrypt_many(r.encrypted_data for r in records)

    opened: List[OpenedItem] = []
    for record, outcome in zip(records, outcomes):
        if outcome.failed:
            opened.append(_mark_failed(record, type(outcome.error).__name__))
            continue
        try:
            item = VaultItemPlaintext.from_payload(outcome.value)
        except (TypeError, ValueError):
            opened.append(_mark_failed(record, "InvalidPayload"))
            continue
        opened.append(OpenedItem(record=record, item=item))

    failures = sum(1 for o in opened if o.failed_to_decrypt)
    if failures:
        logger.warning("%d of %d vault items failed to decrypt", failures, len(opened))
    return opened
