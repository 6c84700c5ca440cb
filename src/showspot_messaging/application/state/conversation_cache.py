"""Grouped conversation summaries held for one messaging session.

Two writers touch the cache: wholesale refreshes from the store and targeted
updates from the change feed. Every mutation runs between awaits, so each
one is atomic on the event loop. Races between a refresh and a targeted
update converge per conversation by ``last_message_at``. A read mark also
outranks any snapshot whose newest message is not newer than the mark.

Feed delivery is at-least-once. A message is counted unread at most once:
ids already applied are remembered, and anything no newer than the last
snapshot of that conversation was already counted by the store.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime
from uuid import UUID

from showspot_messaging.application.dto.conversation import ConversationGroups, empty_groups
from showspot_messaging.domain.entities.conversation import Conversation
from showspot_messaging.domain.entities.message import Message
from showspot_messaging.domain.entities.profile import DisplayIdentity
from showspot_messaging.domain.value_objects.entity_ref import EntityRef, conversation_key
from showspot_messaging.domain.value_objects.enums import EntityType


class ConversationCache:
    def __init__(self) -> None:
        self._groups: ConversationGroups = empty_groups()
        self._read_marks: dict[str, datetime] = {}
        self._watermarks: dict[str, datetime] = {}
        self._seen: dict[str, set[UUID]] = {}
        self._snapshot_at: datetime | None = None

    @property
    def snapshot_at(self) -> datetime | None:
        return self._snapshot_at

    @property
    def groups(self) -> ConversationGroups:
        return {t: list(convs) for t, convs in self._groups.items()}

    @property
    def unread_total(self) -> int:
        return sum(c.unread_count for convs in self._groups.values() for c in convs)

    def find(self, other_entity_id: str) -> tuple[EntityType, Conversation] | None:
        for group, convs in self._groups.items():
            for conv in convs:
                if conv.other_entity_id == other_entity_id:
                    return group, conv
        return None

    def clear(self) -> None:
        self._groups = empty_groups()
        self._read_marks.clear()
        self._watermarks.clear()
        self._seen.clear()
        self._snapshot_at = None

    def apply_snapshot(self, groups: ConversationGroups, as_of: datetime) -> None:
        """Replace the cache with a refresh requested at ``as_of``."""
        current = {
            conv.other_entity_id: (group, conv)
            for group, convs in self._groups.items()
            for conv in convs
        }
        merged = empty_groups()
        placed: set[str] = set()

        for group, convs in groups.items():
            for fresh in convs:
                entity_id = fresh.other_entity_id
                if entity_id in placed:
                    continue
                placed.add(entity_id)
                self._advance_watermark(entity_id, fresh.last_message_at)
                kept = current.get(entity_id)
                conv = fresh
                if kept is not None and kept[1].last_message_at > fresh.last_message_at:
                    # A targeted update landed after the snapshot was taken.
                    conv = kept[1]
                merged[group].append(self._apply_read_mark(conv))

        # Conversations created by the feed while the refresh was in flight.
        for entity_id, (group, conv) in current.items():
            if entity_id not in placed and conv.last_message_at > as_of:
                merged[group].append(conv)

        for convs in merged.values():
            convs.sort(key=lambda c: c.last_message_at, reverse=True)
        self._groups = merged
        self._snapshot_at = as_of

    def apply_message(
        self,
        message: Message,
        *,
        viewer: EntityRef,
        counterpart: DisplayIdentity,
        group: EntityType,
        count_unread: bool,
    ) -> Conversation:
        """Targeted update for the conversation with ``counterpart``.

        Only that conversation changes. A conversation that is not cached yet
        is created in ``group``.
        """
        entity_id = counterpart.ref.id
        found = self.find(entity_id)
        if found is not None and self.is_known(entity_id, message.message_id):
            return found[1]
        counts = (
            count_unread
            and not message.is_own_message
            and not self._counted_by_snapshot(entity_id, message)
        )
        unread_inc = 1 if counts else 0
        self._seen.setdefault(entity_id, set()).add(message.message_id)

        if found is None:
            conv = Conversation(
                conversation_id=conversation_key(viewer, counterpart.ref),
                other_entity_id=counterpart.ref.id,
                other_entity_type=counterpart.ref.type,
                other_entity_name=counterpart.name,
                other_entity_image=counterpart.image,
                last_message=message.message_content,
                last_message_at=message.created_at,
                last_message_sender_id=message.sender_id,
                unread_count=unread_inc,
            )
            self._groups[group].append(conv)
            target_group = group
        else:
            target_group, existing = found
            changes: dict[str, object] = {"unread_count": existing.unread_count + unread_inc}
            if message.created_at >= existing.last_message_at:
                changes.update(
                    last_message=message.message_content,
                    last_message_at=message.created_at,
                    last_message_sender_id=message.sender_id,
                )
            conv = dataclasses.replace(existing, **changes)
            self._replace(target_group, conv)

        self._groups[target_group].sort(key=lambda c: c.last_message_at, reverse=True)
        return conv

    def reset_unread(self, *other_entity_ids: str, as_of: datetime | None) -> bool:
        """Zero the unread count for these counterparts in every group.

        With ``as_of`` a read mark is kept so older snapshots cannot bring the
        count back. Without it the reset is only local and the next snapshot
        wins.
        """
        ids = set(other_entity_ids)
        changed = False
        if as_of is not None:
            for entity_id in ids:
                previous = self._read_marks.get(entity_id)
                if previous is None or as_of > previous:
                    self._read_marks[entity_id] = as_of
        for group, convs in self._groups.items():
            updated: list[Conversation] = []
            for conv in convs:
                if conv.other_entity_id in ids and conv.unread_count:
                    conv = dataclasses.replace(conv, unread_count=0)
                    changed = True
                updated.append(conv)
            self._groups[group] = updated
        return changed

    def is_known(self, other_entity_id: str, message_id: UUID) -> bool:
        return message_id in self._seen.get(other_entity_id, ())

    def _counted_by_snapshot(self, entity_id: str, message: Message) -> bool:
        watermark = self._watermarks.get(entity_id)
        return watermark is not None and message.created_at <= watermark

    def _advance_watermark(self, entity_id: str, last_message_at: datetime) -> None:
        previous = self._watermarks.get(entity_id)
        if previous is None or last_message_at > previous:
            self._watermarks[entity_id] = last_message_at

    def _apply_read_mark(self, conv: Conversation) -> Conversation:
        mark = self._read_marks.get(conv.other_entity_id)
        if mark is not None and conv.unread_count and conv.last_message_at <= mark:
            return dataclasses.replace(conv, unread_count=0)
        return conv

    def _replace(self, group: EntityType, conv: Conversation) -> None:
        self._groups[group] = [
            conv if c.other_entity_id == conv.other_entity_id else c
            for c in self._groups[group]
        ]
