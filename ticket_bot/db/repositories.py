"""Access objects for the ticket tables."""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    MessageCreate,
    MessageFilters,
    MessageIdentifier,
    MessageUpdate,
    PanelCreate,
    PanelFilters,
    PanelIdentifier,
    PanelUpdate,
    ParticipantCreate,
    ParticipantFilters,
    ParticipantIdentifier,
    ParticipantUpdate,
    Ticket,
    TicketCreate,
    TicketFilters,
    TicketIdentifier,
    TicketMessage,
    TicketPanel,
    TicketParticipant,
    TicketUpdate,
)
from .mutations import Statement
from .queries import BaseQueries, EntityConfig, SortDirection, fields_of

__all__ = [
    "TicketQueries",
    "TicketParticipantQueries",
    "TicketMessageQueries",
    "TicketPanelQueries",
]

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    # Same text format as CURRENT_TIMESTAMP.
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%d %H:%M:%S")


class TicketQueries(BaseQueries[Ticket, TicketIdentifier, TicketFilters, TicketCreate, TicketUpdate]):
    config = EntityConfig(
        table="tickets",
        entity_name="Ticket",
        column_map={"number": "ticket_number", "category": "category_key"},
        entity_model=Ticket,
        identifier_fields=fields_of(TicketIdentifier),
        filter_fields=fields_of(TicketFilters),
        create_fields=fields_of(TicketCreate),
        update_fields=fields_of(TicketUpdate),
    )

    async def next_ticket_number(self, category: str) -> int:
        """Return the number the next ticket of *category* will get (max + 1)."""
        column = self.naming.to_storage_name("number")
        statement = Statement(
            f"SELECT COALESCE(MAX({column}), 0) + 1 FROM {self.table} "
            f"WHERE {self.naming.to_storage_name('category')} = {self.dialect.placeholder(1)}",
            (category,),
        )
        return int(await self._scalar("compute next number for", statement))

    async def open_ticket(self, channel_id: str, creator_id: str, category: str) -> Ticket:
        """Create a ticket numbered after the last one of its category.

        Numbering and insert run in one transaction.
        """

        async def _open(tx: TicketQueries) -> Ticket:
            number = await tx.next_ticket_number(category)
            return await tx.create_and_return(
                {
                    "channelId": channel_id,
                    "creatorId": creator_id,
                    "category": category,
                    "number": number,
                }
            )

        ticket = await self.run_in_transaction(_open)
        logger.info(
            "Opened ticket %s #%d for creator %s", ticket.category, ticket.number, creator_id
        )
        return ticket

    async def close_ticket(
        self, ticket_id: int, closed_by: str, reason: Optional[str] = None
    ) -> Ticket:
        ticket = await self.update_and_return(
            {"ticketId": ticket_id},
            {
                "status": "closed",
                "closedAt": _utcnow(),
                "closedBy": closed_by,
                "closeReason": reason,
            },
        )
        logger.info("Closed ticket %d by %s", ticket_id, closed_by)
        return ticket

    async def list_open_for_creator(self, creator_id: str) -> List[Ticket]:
        """Open tickets of one creator, newest first."""
        return await self.find_all(
            {"creatorId": creator_id, "status": "open"},
            order_by="ticketId",
            direction=SortDirection.DESC,
        )


class TicketParticipantQueries(
    BaseQueries[
        TicketParticipant,
        ParticipantIdentifier,
        ParticipantFilters,
        ParticipantCreate,
        ParticipantUpdate,
    ]
):
    config = EntityConfig(
        table="ticket_participants",
        entity_name="TicketParticipant",
        entity_model=TicketParticipant,
        identifier_fields=fields_of(ParticipantIdentifier),
        filter_fields=fields_of(ParticipantFilters),
        create_fields=fields_of(ParticipantCreate),
        update_fields=fields_of(ParticipantUpdate),
    )

    async def add_participant(self, ticket_id: int, user_id: str, added_by: str) -> TicketParticipant:
        """Add *user_id* to a ticket; re-adding only records the new ``added_by``."""
        return await self.upsert(
            {"ticketId": ticket_id, "userId": user_id, "addedBy": added_by},
            conflict_target=("ticketId", "userId"),
            update_fields="addedBy",
        )

    async def remove_participant(self, ticket_id: int, user_id: str) -> None:
        await self.delete({"ticketId": ticket_id, "userId": user_id})

    async def list_for_ticket(self, ticket_id: int) -> List[TicketParticipant]:
        return await self.find_all({"ticketId": ticket_id}, order_by="id")


class TicketMessageQueries(
    BaseQueries[TicketMessage, MessageIdentifier, MessageFilters, MessageCreate, MessageUpdate]
):
    config = EntityConfig(
        table="ticket_messages",
        entity_name="TicketMessage",
        entity_model=TicketMessage,
        identifier_fields=fields_of(MessageIdentifier),
        filter_fields=fields_of(MessageFilters),
        create_fields=fields_of(MessageCreate),
        update_fields=fields_of(MessageUpdate),
    )

    async def archive_message(
        self,
        ticket_id: int,
        message_id: str,
        author_id: str,
        author_username: str,
        content: Optional[str],
        created_at: datetime.datetime,
        edited_at: Optional[datetime.datetime] = None,
        attachments: Sequence[Any] = (),
        embeds: Sequence[Any] = (),
    ) -> TicketMessage:
        """Store a message of a ticket; archiving it again refreshes the editable parts."""
        return await self.upsert(
            {
                "ticketId": ticket_id,
                "messageId": message_id,
                "authorId": author_id,
                "authorUsername": author_username,
                "content": content,
                "createdAt": _timestamp(created_at),
                "editedAt": _timestamp(edited_at),
                "attachments": json.dumps(list(attachments)),
                "embeds": json.dumps(list(embeds)),
            },
            conflict_target=("ticketId", "messageId"),
            update_fields=("content", "editedAt", "attachments", "embeds"),
        )

    async def list_for_ticket(self, ticket_id: int) -> List[TicketMessage]:
        """Messages of a ticket in the order they were written."""
        return await self.find_all({"ticketId": ticket_id}, order_by="createdAt")


class TicketPanelQueries(
    BaseQueries[TicketPanel, PanelIdentifier, PanelFilters, PanelCreate, PanelUpdate]
):
    config = EntityConfig(
        table="ticket_panels",
        entity_name="TicketPanel",
        entity_model=TicketPanel,
        identifier_fields=fields_of(PanelIdentifier),
        filter_fields=fields_of(PanelFilters),
        create_fields=fields_of(PanelCreate),
        update_fields=fields_of(PanelUpdate),
    )

    async def save_panel(
        self, channel_id: str, message_id: str, panel_config: Dict[str, Any]
    ) -> TicketPanel:
        return await self.upsert(
            {
                "channelId": channel_id,
                "messageId": message_id,
                "panelConfig": json.dumps(panel_config),
                "updatedAt": _utcnow(),
            },
            conflict_target="messageId",
            update_fields=("channelId", "panelConfig", "updatedAt"),
        )
