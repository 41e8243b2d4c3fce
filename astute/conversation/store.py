"""Durable conversation store backed by one JSONL file per conversation."""

from __future__ import annotations

import base64
import hashlib
import json
import os
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from astute.conversation.models import DEFAULT_TITLE, Conversation, Message, MessageRole
from astute.errors import PersistenceError
from astute.logging import get_logger

logger = get_logger(__name__)


class ConversationStore:
    """
    Ordered collection of conversations with best-effort persistence.

    Conversations live in memory once loaded; ``save()`` flushes every
    conversation whose serialized form changed since the last write. Each file
    holds a metadata line followed by one line per message, in insertion order.
    """

    def __init__(self, workspace: Path):
        self.workspace = workspace
        self.conversations_dir = workspace / "conversations"
        self.conversations_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Conversation] = {}
        self._persisted_signatures: dict[str, str] = {}
        # Deleted ids; late session events must not resurrect them.
        self._deleted: set[str] = set()
        self._loaded = False
        self._save_writes = 0
        self._save_skips = 0

    def _get_conversation_path(self, conversation_id: str) -> Path:
        return self.conversations_dir / f"{conversation_id}.jsonl"

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        for path in sorted(self.conversations_dir.glob("*.jsonl")):
            conversation = self._load(path)
            if conversation is None or conversation.id in self._cache:
                continue
            self._cache[conversation.id] = conversation
            self._persisted_signatures[conversation.id] = self._persist_signature(conversation)

    def _load(self, path: Path) -> Conversation | None:
        """Load a conversation from disk."""
        try:
            conversation: Conversation | None = None
            pending: list[dict[str, Any]] = []
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    if data.get("_type") == "metadata":
                        conversation = Conversation(
                            id=data.get("id") or path.stem,
                            title=data.get("title") or DEFAULT_TITLE,
                            timestamp=datetime.fromisoformat(data["timestamp"]),
                            summary=data.get("summary"),
                            title_generated=bool(data.get("title_generated", False)),
                        )
                    else:
                        pending.append(data)
            if conversation is None:
                logger.warning("Conversation file has no metadata line", path=str(path))
                return None
            for data in pending:
                audio = data.get("audio")
                msg = Message(
                    id=data.get("id") or uuid.uuid4().hex,
                    role=MessageRole.parse(data.get("role", "")),
                    content=data.get("content", ""),
                    timestamp=datetime.fromisoformat(data["timestamp"]),
                    audio=base64.b64decode(audio) if audio else None,
                    conversation=conversation,
                )
                conversation.messages.append(msg)
            return conversation
        except Exception as e:
            logger.warning("Failed to load conversation", path=str(path), error=str(e))
            return None

    @staticmethod
    def _render(conversation: Conversation) -> str:
        """Serialize a conversation to its JSONL snapshot."""
        lines = [
            json.dumps(
                {
                    "_type": "metadata",
                    "id": conversation.id,
                    "timestamp": conversation.timestamp.isoformat(),
                    "title": conversation.title,
                    "summary": conversation.summary,
                    "title_generated": conversation.title_generated,
                },
                ensure_ascii=False,
            )
        ]
        for msg in conversation.messages:
            lines.append(json.dumps(
                {
                    "id": msg.id,
                    "role": msg.role.value,
                    "content": msg.content,
                    "timestamp": msg.timestamp.isoformat(),
                    "audio": base64.b64encode(msg.audio).decode("ascii") if msg.audio else None,
                },
                ensure_ascii=False,
            ))
        return "\n".join(lines) + "\n"

    @classmethod
    def _persist_signature(cls, conversation: Conversation) -> str:
        # Corrections rewrite earlier messages in place, so hash the whole snapshot.
        return hashlib.sha256(cls._render(conversation).encode("utf-8")).hexdigest()

    @staticmethod
    def _write_conversation_file(path: Path, text: str) -> None:
        """Write *text* to *path* via a temp file and atomic rename."""
        tmp = path.with_name(f".{path.name}.tmp-{uuid.uuid4().hex[:8]}")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()

    def insert(self, conversation: Conversation) -> None:
        """Register a conversation; it is written on the next ``save()``."""
        self._ensure_loaded()
        self._deleted.discard(conversation.id)
        self._cache[conversation.id] = conversation

    def insert_message(self, message: Message) -> None:
        """Register a message with its owning conversation."""
        conversation = message.conversation
        if conversation is None:
            raise ValueError("message is not attached to a conversation")
        if not any(m is message for m in conversation.messages):
            conversation.messages.append(message)
        if conversation.id in self._deleted:
            logger.debug("Ignoring message for deleted conversation", conversation_id=conversation.id)
            return
        self.insert(conversation)

    def get(self, conversation_id: str) -> Conversation | None:
        self._ensure_loaded()
        return self._cache.get(conversation_id)

    def delete(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages. Returns False if unknown."""
        self._ensure_loaded()
        conversation = self._cache.pop(conversation_id, None)
        self._persisted_signatures.pop(conversation_id, None)
        self._deleted.add(conversation_id)
        path = self._get_conversation_path(conversation_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Failed to delete conversation {conversation_id}: {e}",
                failed_ids=[conversation_id],
            ) from e
        if conversation is not None:
            logger.info("Conversation deleted", conversation_id=conversation_id)
        return conversation is not None

    def delete_all(self) -> int:
        """Delete every conversation; returns how many were removed."""
        self._ensure_loaded()
        ids = list(self._cache)
        for conversation_id in ids:
            self.delete(conversation_id)
        return len(ids)

    def fetch_all_sorted_by_recency(self) -> list[Conversation]:
        """All conversations, newest first."""
        self._ensure_loaded()
        return sorted(self._cache.values(), key=lambda c: c.timestamp, reverse=True)

    def save(self) -> None:
        """
        Flush changed conversations to disk.

        Not transactional: conversations that write successfully stay written
        even if another one fails.

        Raises:
            PersistenceError: if any conversation could not be written.
        """
        self._ensure_loaded()
        started = time.perf_counter()
        failed: list[str] = []
        writes = 0
        for conversation in list(self._cache.values()):
            text = self._render(conversation)
            signature = hashlib.sha256(text.encode("utf-8")).hexdigest()
            path = self._get_conversation_path(conversation.id)
            if path.exists() and self._persisted_signatures.get(conversation.id) == signature:
                self._save_skips += 1
                continue
            try:
                self._write_conversation_file(path, text)
            except OSError as e:
                logger.warning("Failed to write conversation", conversation_id=conversation.id, error=str(e))
                failed.append(conversation.id)
                continue
            self._persisted_signatures[conversation.id] = signature
            self._save_writes += 1
            writes += 1

        logger.debug(
            "conversation_store_saved",
            conversations=len(self._cache),
            written=writes,
            failed=len(failed),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
            save_writes=self._save_writes,
            save_skips=self._save_skips,
        )
        if failed:
            raise PersistenceError(f"Failed to save {len(failed)} conversation(s)", failed_ids=failed)

