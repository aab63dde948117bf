from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..models import UPDATABLE_FIELDS, Contact, iso_now
from ..repository import Repository

log = logging.getLogger(__name__)


class ContactService:
    """validation, id assignment and partial updates on top of a contact repository"""

    def __init__(self, repository: Repository[Contact]):
        self.repository = repository

    # helpers ----------------------------------------------------------
    @staticmethod
    def _build(data: Dict[str, Any]) -> Contact:
        # unknown keys are ignored, missing ones surface as valueerror
        return Contact(**{k: data.get(k) for k in UPDATABLE_FIELDS})

    # crud -------------------------------------------------------------
    async def create(self, data: Dict[str, Any]) -> Contact:
        contact = self._build(data)  # may raise valueerror
        log.debug("creating contact %s", contact.id)
        return await self.repository.create(contact)

    async def get(self, contact_id: str) -> Optional[Contact]:
        return await self.repository.get_by_id(contact_id)

    async def list_all(self) -> List[Contact]:
        return await self.repository.get_all()

    async def update(self, contact_id: str, updates: Dict[str, Any]) -> Optional[Contact]:
        current = await self.repository.get_by_id(contact_id)
        if current is None:
            log.debug("update skipped, %s not found", contact_id)
            return None
        # work on a copy so a failed validation leaves the stored value alone
        model = Contact.from_dict(current.to_dict())
        model.apply_updates(updates)
        # storage replaces the full record
        return await self.repository.update(contact_id, model)

    async def upsert(self, data: Dict[str, Any]) -> Contact:
        contact = self._build(data)
        if data.get("id"):
            contact.id = str(data["id"])
            existing = await self.repository.get_by_id(contact.id)
            if existing is not None:
                contact.created_at = existing.created_at
                contact.updated_at = iso_now()
        log.debug("upserting contact %s", contact.id)
        return await self.repository.upsert(contact)

    async def delete(self, contact_id: str) -> bool:
        ok = await self.repository.delete(contact_id)
        if ok:
            log.info("deleted contact %s", contact_id)
        return ok

    async def clear(self) -> None:
        log.info("clearing all contacts")
        await self.repository.clear()

    async def exists(self, contact_id: str) -> bool:
        return await self.repository.exists(contact_id)

    async def count(self) -> int:
        return await self.repository.count()

    # queries ----------------------------------------------------------
    async def search(self, query: str) -> List[Contact]:
        q = (query or "").strip().lower()
        if not q:
            return []
        rows = await self.repository.get_all()
        return [c for c in rows if q in c.full_name.lower() or q in c.email or q in c.phone]
