"""
Signature metadata persistence.

Records are write-once: saving an id that already exists fails with
MetadataPersistenceFailure instead of overwriting the earlier record.

Backends:
- file: one JSON document per signature id in SIGNATURE_METADATA_DIR
- supabase: rows in the signature_metadata table
"""
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client

from solarsign.config import Settings, get_settings
from solarsign.models import SignatureMetadata
from solarsign.pdf.errors import MetadataPersistenceFailure

logger = logging.getLogger(__name__)

# Ids become file names; anything outside this set is rejected
_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


def _sort_newest_first(records: List[SignatureMetadata]) -> List[SignatureMetadata]:
    return sorted(records, key=lambda m: m.signed_at, reverse=True)


class SignatureMetadataStore(ABC):
    """Async store for SignatureMetadata records."""

    @abstractmethod
    async def save(self, metadata: SignatureMetadata) -> None:
        ...

    @abstractmethod
    async def find_by_id(self, signature_id: str) -> Optional[SignatureMetadata]:
        ...

    @abstractmethod
    async def find_by_opportunity(self, opportunity_id: str) -> List[SignatureMetadata]:
        """All records for an opportunity, newest signed_at first."""
        ...


class FileSignatureMetadataStore(SignatureMetadataStore):
    """One pretty-printed JSON file per signature id."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, signature_id: str) -> str:
        if not signature_id or not _SAFE_ID.match(signature_id):
            raise MetadataPersistenceFailure(f"Invalid signature id: {signature_id!r}")
        return os.path.join(self.directory, f"{signature_id}.json")

    def _write(self, metadata: SignatureMetadata) -> str:
        path = self._path(metadata.signature_id)
        try:
            os.makedirs(self.directory, exist_ok=True)
            # "x" fails if the file exists, keeping records write-once
            with open(path, "x", encoding="utf-8") as f:
                json.dump(metadata.to_wire(), f, indent=2)
        except FileExistsError:
            raise MetadataPersistenceFailure(
                f"Signature metadata already exists: {metadata.signature_id}"
            )
        except OSError as e:
            raise MetadataPersistenceFailure(f"Failed to write signature metadata: {e}")
        return path

    def _read(self, path: str) -> SignatureMetadata:
        with open(path, "r", encoding="utf-8") as f:
            return SignatureMetadata.model_validate(json.load(f))

    async def save(self, metadata: SignatureMetadata) -> None:
        path = self._write(metadata)
        logger.info(f"Signature metadata saved: {os.path.basename(path)}")

    async def find_by_id(self, signature_id: str) -> Optional[SignatureMetadata]:
        path = self._path(signature_id)
        if not os.path.exists(path):
            return None
        try:
            return self._read(path)
        except (OSError, ValueError, ValidationError) as e:
            raise MetadataPersistenceFailure(f"Failed to read signature metadata {signature_id}: {e}")

    def _scan(self, opportunity_id: str) -> List[SignatureMetadata]:
        if not os.path.isdir(self.directory):
            return []
        records = []
        for name in os.listdir(self.directory):
            if not name.endswith(".json"):
                continue
            try:
                metadata = self._read(os.path.join(self.directory, name))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(f"Error reading signature metadata file {name}: {e}")
                continue
            if metadata.opportunity_id == opportunity_id:
                records.append(metadata)
        return records

    async def find_by_opportunity(self, opportunity_id: str) -> List[SignatureMetadata]:
        records = self._scan(opportunity_id)
        return _sort_newest_first(records)


class SupabaseSignatureMetadataStore(SignatureMetadataStore):
    """
    Stores records in the signature_metadata table.

    Columns: signature_id (unique), opportunity_id, signed_at, payload (jsonb).
    """

    TABLE = "signature_metadata"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(
                self.settings.supabase_url,
                self.settings.supabase_service_key,
            )
        return self._client

    @staticmethod
    def _to_row(metadata: SignatureMetadata) -> Dict[str, Any]:
        wire = metadata.to_wire()
        return {
            "signature_id": metadata.signature_id,
            "opportunity_id": metadata.opportunity_id,
            "signed_at": wire["signedAt"],
            "payload": wire,
        }

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> SignatureMetadata:
        return SignatureMetadata.model_validate(row["payload"])

    async def save(self, metadata: SignatureMetadata) -> None:
        existing = await self.find_by_id(metadata.signature_id)
        if existing is not None:
            raise MetadataPersistenceFailure(
                f"Signature metadata already exists: {metadata.signature_id}"
            )
        try:
            self.client.table(self.TABLE).insert(self._to_row(metadata)).execute()
        except Exception as e:
            # Unique constraint on signature_id also lands here
            raise MetadataPersistenceFailure(f"Failed to insert signature metadata: {e}")
        logger.info(f"Signature metadata saved to {self.TABLE}: {metadata.signature_id}")

    async def find_by_id(self, signature_id: str) -> Optional[SignatureMetadata]:
        try:
            result = self.client.table(self.TABLE).select("*").eq(
                "signature_id", signature_id
            ).execute()
        except Exception as e:
            raise MetadataPersistenceFailure(f"Failed to read signature metadata: {e}")
        if not result.data:
            return None
        return self._from_row(result.data[0])

    async def find_by_opportunity(self, opportunity_id: str) -> List[SignatureMetadata]:
        try:
            result = self.client.table(self.TABLE).select("*").eq(
                "opportunity_id", opportunity_id
            ).order("signed_at", desc=True).execute()
        except Exception as e:
            raise MetadataPersistenceFailure(f"Failed to list signature metadata: {e}")
        records = [self._from_row(row) for row in result.data or []]
        return _sort_newest_first(records)


# Singleton instance
_metadata_store: Optional[SignatureMetadataStore] = None


def create_metadata_store(settings: Optional[Settings] = None) -> SignatureMetadataStore:
    """Build the store selected by METADATA_STORE_BACKEND."""
    settings = settings or get_settings()
    backend = settings.metadata_store_backend.lower()
    if backend == "supabase":
        return SupabaseSignatureMetadataStore(settings=settings)
    if backend != "file":
        logger.warning(f"Unknown METADATA_STORE_BACKEND '{backend}', using file store")
    return FileSignatureMetadataStore(settings.signature_metadata_dir)


def get_metadata_store() -> SignatureMetadataStore:
    """Get the metadata store singleton."""
    global _metadata_store
    if _metadata_store is None:
        _metadata_store = create_metadata_store()
    return _metadata_store
