# Vault Module - Vault item sealing, batch opening and backups
#
# Item contents encrypted client-side into envelopes; metadata stays
# plaintext for server-side search.

from .items import (
    AuthMethod,
    ItemType,
    OpenedItem,
    VaultItemPlaintext,
    VaultRecord,
    build_metadata,
    domain_from_url,
    open_record,
    open_records,
    seal_item,
)
from .backup import BackupFormatError, export_vault, import_vault

__all__ = [
    "AuthMethod",
    "ItemType",
    "OpenedItem",
    "VaultItemPlaintext",
    "VaultRecord",
    "build_metadata",
    "domain_from_url",
    "open_record",
    "open_records",
    "seal_item",
    "BackupFormatError",
    "export_vault",
    "import_vault",
]
