"""Vault export / import.

Exports carry the records exactly as the server stores them (item
contents stay sealed under the account key).  With an export password
the whole document is wrapped once more::

    {"encrypted": true, "salt": <b64>, "iterations": 100000, "data": <envelope>}

where ``data`` is an envelope under a key derived from the export
password and a fresh salt.  Without a password::

    {"version": 1, "timestamp": <iso8601>, "items": [...]}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ..config import DEFAULT_KEY_ITERATIONS
from ..core import EventSeverity, EventType, get_audit_logger
from ..crypto import envelope
from ..crypto.exceptions import KeyDerivationFailure
from ..crypto.kdf import KeyDerivationParams, derive_from_params
from .items import VaultRecord

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


class BackupFormatError(ValueError):
    """Raised when an export cannot be read"""
    pass


def _record_dict(record: Union[VaultRecord, Dict[str, Any]]) -> Dict[str, Any]:
    return record.to_api() if isinstance(record, VaultRecord) else dict(record)


def export_vault(
    records: Iterable[Union[VaultRecord, Dict[str, Any]]],
    password: Optional[str] = None,
    iterations: int = DEFAULT_KEY_ITERATIONS,
) -> str:
    """
    Serialize vault records for backup.

    Args:
        records: Sealed records (``VaultRecord`` or API dicts)
        password: Optional export password; wraps the whole export
        iterations: PBKDF2 rounds for the export key

    Returns:
        JSON text
    """
    items = [_record_dict(r) for r in records]
    export = {
        "version": EXPORT_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "items": items,
    }

    if password:
        params = KeyDerivationParams.new(iterations=iterations)
        key = derive_from_params(password, params)
        document = {
            "encrypted": True,
            **params.to_dict(),
            "data": envelope.encrypt(export, key),
        }
    else:
        document = export

    get_audit_logger().log_event(
        event_type=EventType.VAULT_EXPORTED,
        severity=EventSeverity.INFO,
        message="Vault exported",
        details={"item_count": len(items), "encrypted": bool(password)},
    )
    return json.dumps(document)


def import_vault(data: str, password: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read an export back into a list of record dicts.

    Raises:
        BackupFormatError: Not JSON, wrong shape, password missing or no
            sealed ``data`` in an encrypted export
        AuthenticationFailure: Wrong export password or tampered export
    """
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise BackupFormatError("Invalid import data format") from exc

    if not isinstance(parsed, dict):
        raise BackupFormatError("Invalid import data format")

    if parsed.get("encrypted"):
        if not password:
            raise BackupFormatError("Password required to decrypt this export")
        try:
            params = KeyDerivationParams.from_dict(parsed)
        except KeyDerivationFailure as exc:
            raise BackupFormatError(f"Invalid export key parameters: {exc}") from exc
        sealed = parsed.get("data")
        if not isinstance(sealed, str) or not sealed:
            raise BackupFormatError("Encrypted export has no data field")
        key = derive_from_params(password, params)
        logger.debug("Decrypting export (%d iterations)", params.iterations)
        parsed = envelope.decrypt(sealed, key)
        if isinstance(parsed, str):
            raise BackupFormatError("Decrypted export is not a JSON document")

    items = parsed.get("items") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        raise BackupFormatError("Invalid vault data format")

    get_audit_logger().log_event(
        event_type=EventType.VAULT_IMPORTED,
        severity=EventSeverity.INFO,
        message="Vault imported",
        details={"item_count": len(items)},
    )
    return items
