import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pymongo import DESCENDING, UpdateOne
from pymongo.errors import PyMongoError

from Connexa.whatsapp_session.message_utils import (
    MEDIA_TYPES,
    extract_message_text,
    get_message_type,
    to_unix_seconds,
)

logger = logging.getLogger(__name__)

STATUS_BROADCAST = "status@broadcast"

# proto.WebMessageInfo.Status
MESSAGE_STATUS = {0: "error", 1: "pending", 2: "server_ack", 3: "delivered", 4: "read", 5: "played"}

# Baileys chat field -> stored field
_CHAT_FIELDS = {
    "name": "name",
    "unreadCount": "unread_count",
    "conversationTimestamp": "last_message_timestamp",
    "archived": "is_archived",
}

_CONTACT_FIELDS = {
    "name": "name",
    "notify": "notify",
    "verifiedName": "verified_name",
    "imgUrl": "img_url",
}


def _now():
    return datetime.now(timezone.utc)


def _display_name(jid: str, contact: Optional[Dict[str, Any]] = None, fallback: Optional[str] = None) -> str:
    contact = contact or {}
    return contact.get("name") or contact.get("notify") or contact.get("verified_name") or fallback or jid.split("@")[0]


def _mute_fields(mute_end_ms: int) -> Dict[str, Any]:
    """Stored mute state for a muteEndTime in epoch ms. 0 unmutes, -1 mutes until unmuted."""
    if not mute_end_ms:
        return {"is_muted": False, "mute_expiry": None}
    return {"is_muted": True, "mute_expiry": mute_end_ms}


def _is_muted(doc: Dict[str, Any]) -> bool:
    expiry = doc.get("mute_expiry")
    if not doc.get("is_muted", False):
        return False
    return not expiry or expiry < 0 or expiry > time.time() * 1000


def format_message(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "messageId": doc.get("message_id"),
        "chatId": doc.get("chat_id"),
        "fromMe": doc.get("from_me", False),
        "participant": doc.get("participant"),
        "type": doc.get("message_type"),
        "text": doc.get("text") or "",
        "timestamp": doc.get("timestamp", 0),
        "status": doc.get("status"),
        "starred": doc.get("starred", False),
        "pushName": doc.get("push_name"),
        "key": doc.get("key"),
    }


class WhatsAppStore:
    """
    Document-store view of every session: chats, contacts, messages and the session
    records themselves. Writes come from socket events; reads back the REST API.
    Without a database every write is skipped and every read is empty.
    """

    def __init__(self, db):
        self.db = db
        if db is not None:
            self.sessions_collection = db.Sessions
            self.chats_collection = db.Chats
            self.contacts_collection = db.Contacts
            self.messages_collection = db.Messages

    @property
    def enabled(self) -> bool:
        return self.db is not None

    # --- Sessions ---

    def save_session(self, phone: str, **fields) -> None:
        if not self.enabled:
            return
        now = _now()
        fields["updated_at"] = now
        fields.setdefault("connected", False)
        try:
            self.sessions_collection.update_one(
                {"phone": phone},
                {"$set": fields, "$setOnInsert": {"created_at": now}},
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"Error saving session {phone}: {e}")

    def restorable_phones(self) -> List[str]:
        if not self.enabled:
            return []
        return [doc["phone"] for doc in self.sessions_collection.find({"connected": True}, {"phone": 1})]

    # --- Chats ---

    def upsert_chats(self, phone: str, chats: Iterable[Dict[str, Any]]) -> int:
        if not self.enabled:
            return 0
        now = _now()
        ops = []
        for chat in chats:
            chat_id = chat.get("id")
            if not chat_id:
                continue
            fields = {stored: chat[src] for src, stored in _CHAT_FIELDS.items() if chat.get(src) is not None}
            if "last_message_timestamp" in fields:
                fields["last_message_timestamp"] = to_unix_seconds(fields["last_message_timestamp"])
            if "unread_count" in fields:
                fields["unread_count"] = max(int(fields["unread_count"]), 0)
            # pinned is the pin timestamp, 0 or null once unpinned
            if "pinned" in chat:
                fields["is_pinned"] = bool(to_unix_seconds(chat["pinned"]))
            if "muteEndTime" in chat:
                fields.update(_mute_fields(to_unix_seconds(chat["muteEndTime"])))
            fields["updated_at"] = now

            defaults = {
                "is_group": chat_id.endswith("@g.us"),
                "created_at": now,
                "labels": [],
            }
            for key, value in (("unread_count", 0), ("last_message_timestamp", 0),
                               ("is_archived", False), ("is_pinned", False), ("is_muted", False)):
                if key not in fields:
                    defaults[key] = value

            ops.append(UpdateOne(
                {"phone": phone, "chat_id": chat_id},
                {"$set": fields, "$setOnInsert": defaults},
                upsert=True
            ))
        return self._bulk(self.chats_collection, ops)

    def delete_chats(self, phone: str, chat_ids: List[str]) -> int:
        if not self.enabled or not chat_ids:
            return 0
        result = self.chats_collection.delete_many({"phone": phone, "chat_id": {"$in": chat_ids}})
        self.messages_collection.delete_many({"phone": phone, "chat_id": {"$in": chat_ids}})
        return result.deleted_count

    def set_chat_flags(self, phone: str, chat_id: str, **flags) -> None:
        if not self.enabled:
            return
        flags["updated_at"] = _now()
        self.chats_collection.update_one({"phone": phone, "chat_id": chat_id}, {"$set": flags})

    def clear_chat_messages(self, phone: str, chat_id: str) -> int:
        if not self.enabled:
            return 0
        result = self.messages_collection.delete_many({"phone": phone, "chat_id": chat_id})
        self.chats_collection.update_one(
            {"phone": phone, "chat_id": chat_id},
            {"$set": {"last_message": None, "unread_count": 0, "updated_at": _now()}}
        )
        return result.deleted_count

    def list_chats(self, phone: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        docs = list(self.chats_collection.find(
            {"phone": phone, "chat_id": {"$ne": STATUS_BROADCAST}}
        ).sort("last_message_timestamp", DESCENDING))
        contacts = self._contacts_by_jid(phone, [d["chat_id"] for d in docs if not d.get("is_group")])
        return [self._format_chat(doc, contacts.get(doc["chat_id"])) for doc in docs]

    def unread_chats(self, phone: str) -> List[Dict[str, Any]]:
        return [chat for chat in self.list_chats(phone) if chat["unreadCount"] > 0]

    def broadcast_lists(self, phone: str) -> List[Dict[str, Any]]:
        return [chat for chat in self.list_chats(phone) if chat["id"].endswith("@broadcast")]

    def channels(self, phone: str) -> List[Dict[str, Any]]:
        return [chat for chat in self.list_chats(phone) if chat["id"].endswith("@newsletter")]

    def add_label(self, phone: str, chat_id: str, label_id: str) -> None:
        if self.enabled:
            self.chats_collection.update_one({"phone": phone, "chat_id": chat_id},
                                             {"$addToSet": {"labels": label_id}})

    def remove_label(self, phone: str, chat_id: str, label_id: str) -> None:
        if self.enabled:
            self.chats_collection.update_one({"phone": phone, "chat_id": chat_id},
                                             {"$pull": {"labels": label_id}})

    def list_labels(self, phone: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        pipeline = [
            {"$match": {"phone": phone}},
            {"$unwind": "$labels"},
            {"$group": {"_id": "$labels", "chats": {"$push": "$chat_id"}}},
            {"$sort": {"_id": 1}},
        ]
        return [{"labelId": doc["_id"], "chats": doc["chats"]} for doc in self.chats_collection.aggregate(pipeline)]

    def _format_chat(self, doc: Dict[str, Any], contact: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        chat_id = doc["chat_id"]
        return {
            "id": chat_id,
            "name": doc.get("name") if doc.get("is_group") else _display_name(chat_id, contact, doc.get("name")),
            "profilePicUrl": doc.get("profile_pic_url"),
            "unreadCount": doc.get("unread_count", 0),
            "lastMessageTimestamp": doc.get("last_message_timestamp", 0),
            "lastMessage": doc.get("last_message") or {},
            "isGroup": doc.get("is_group", False),
            "isArchived": doc.get("is_archived", False),
            "isPinned": doc.get("is_pinned", False),
            "isMuted": _is_muted(doc),
            "labels": doc.get("labels", []),
        }

    # --- Contacts ---

    def upsert_contacts(self, phone: str, contacts: Iterable[Dict[str, Any]]) -> int:
        if not self.enabled:
            return 0
        now = _now()
        ops = []
        for contact in contacts:
            jid = contact.get("id")
            if not jid:
                continue
            fields = {stored: contact[src] for src, stored in _CONTACT_FIELDS.items() if contact.get(src) is not None}
            fields["updated_at"] = now
            ops.append(UpdateOne(
                {"phone": phone, "jid": jid},
                {"$set": fields, "$setOnInsert": {"created_at": now}},
                upsert=True
            ))
        return self._bulk(self.contacts_collection, ops)

    def list_contacts(self, phone: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        contacts = []
        for doc in self.contacts_collection.find({"phone": phone, "jid": {"$regex": r"@s\.whatsapp\.net$"}}):
            contacts.append({
                "jid": doc["jid"],
                "name": _display_name(doc["jid"], doc),
                "notify": doc.get("notify"),
                "verifiedName": doc.get("verified_name"),
                "imgUrl": doc.get("img_url"),
            })
        return sorted(contacts, key=lambda c: c["name"].lower())

    def _contacts_by_jid(self, phone: str, jids: List[str]) -> Dict[str, Dict[str, Any]]:
        if not jids:
            return {}
        return {doc["jid"]: doc for doc in self.contacts_collection.find({"phone": phone, "jid": {"$in": jids}})}

    # --- Messages ---

    def save_messages(self, phone: str, messages: Iterable[Dict[str, Any]]) -> int:
        if not self.enabled:
            return 0
        now = _now()
        ops = []
        latest = {}
        for msg in messages:
            key = msg.get("key") or {}
            chat_id, message_id = key.get("remoteJid"), key.get("id")
            if not chat_id or not message_id:
                continue
            content = msg.get("message")
            timestamp = to_unix_seconds(msg.get("messageTimestamp"))
            status = msg.get("status")
            doc = {
                "from_me": bool(key.get("fromMe")),
                "participant": key.get("participant") or msg.get("participant"),
                "message_type": get_message_type(content),
                "text": extract_message_text(content),
                "timestamp": timestamp,
                "status": MESSAGE_STATUS.get(status, status) if status is not None else None,
                "key": key,
                "message": content,
                "push_name": msg.get("pushName"),
                "updated_at": now,
            }
            ops.append(UpdateOne(
                {"phone": phone, "chat_id": chat_id, "message_id": message_id},
                {"$set": doc, "$setOnInsert": {"created_at": now, "starred": bool(msg.get("starred"))}},
                upsert=True
            ))
            if chat_id != STATUS_BROADCAST and timestamp >= latest.get(chat_id, (0, None))[0]:
                latest[chat_id] = (timestamp, doc)

        saved = self._bulk(self.messages_collection, ops)

        for chat_id, (timestamp, doc) in latest.items():
            try:
                self.chats_collection.update_one(
                    {"phone": phone, "chat_id": chat_id},
                    {
                        "$set": {
                            "last_message": {"text": doc["text"], "type": doc["message_type"], "fromMe": doc["from_me"]},
                            "last_message_timestamp": timestamp,
                            "updated_at": now,
                        },
                        "$setOnInsert": {
                            "is_group": chat_id.endswith("@g.us"),
                            "unread_count": 0,
                            "is_archived": False,
                            "is_pinned": False,
                            "is_muted": False,
                            "labels": [],
                            "created_at": now,
                        },
                    },
                    upsert=True
                )
            except PyMongoError as e:
                logger.error(f"Error updating last message of {chat_id}: {e}")
        return saved

    def update_messages(self, phone: str, updates: Iterable[Dict[str, Any]]) -> int:
        if not self.enabled:
            return 0
        ops = []
        for item in updates:
            key = item.get("key") or {}
            update = item.get("update") or {}
            fields = {}
            if update.get("status") is not None:
                fields["status"] = MESSAGE_STATUS.get(update["status"], update["status"])
            if update.get("starred") is not None:
                fields["starred"] = bool(update["starred"])
            if update.get("message") is not None:
                fields["message"] = update["message"]
                fields["text"] = extract_message_text(update["message"])
            if not fields or not key.get("id"):
                continue
            fields["updated_at"] = _now()
            ops.append(UpdateOne(
                {"phone": phone, "chat_id": key.get("remoteJid"), "message_id": key["id"]},
                {"$set": fields}
            ))
        return self._bulk(self.messages_collection, ops)

    def get_messages(self, phone: str, chat_id: str, limit: int = 50, before: Optional[int] = None) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        query = {"phone": phone, "chat_id": chat_id}
        if before:
            query["timestamp"] = {"$lt": before}
        cursor = self.messages_collection.find(query).sort("timestamp", DESCENDING).limit(limit)
        return [format_message(doc) for doc in cursor]

    def find_raw_message(self, phone: str, chat_id: str, message_id: str) -> Optional[Dict[str, Any]]:
        """Returns {key, message} as the socket expects for quoting and forwarding."""
        if not self.enabled:
            return None
        doc = self.messages_collection.find_one({"phone": phone, "chat_id": chat_id, "message_id": message_id})
        if doc is None:
            return None
        return {"key": doc.get("key"), "message": doc.get("message"), "messageTimestamp": doc.get("timestamp")}

    def search_messages(self, phone: str, query: str, limit: int = 100, chat_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.enabled or not query:
            return []
        filters = {"phone": phone, "text": {"$regex": re.escape(query), "$options": "i"}}
        if chat_id:
            filters["chat_id"] = chat_id
        cursor = self.messages_collection.find(filters).sort("timestamp", DESCENDING).limit(limit)
        return [format_message(doc) for doc in cursor]

    def messages_by_date(self, phone: str, start: int, end: int, chat_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        filters = {"phone": phone, "timestamp": {"$gte": start, "$lte": end}}
        if chat_id:
            filters["chat_id"] = chat_id
        return [format_message(doc) for doc in self.messages_collection.find(filters).sort("timestamp", DESCENDING)]

    def messages_by_media(self, phone: str, media_type: str, chat_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        message_type = MEDIA_TYPES.get(media_type, media_type)
        filters = {"phone": phone, "message_type": message_type}
        if chat_id:
            filters["chat_id"] = chat_id
        cursor = self.messages_collection.find(filters).sort("timestamp", DESCENDING).limit(limit)
        return [format_message(doc) for doc in cursor]

    # --- Starred ---

    def starred_messages(self, phone: str, chat_id: Optional[str] = None, query: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        filters = {"phone": phone, "starred": True}
        if chat_id:
            filters["chat_id"] = chat_id
        if query:
            filters["text"] = {"$regex": re.escape(query), "$options": "i"}
        return [format_message(doc) for doc in self.messages_collection.find(filters).sort("timestamp", DESCENDING)]

    def set_starred(self, phone: str, chat_id: str, message_ids: List[str], starred: bool) -> int:
        if not self.enabled:
            return 0
        result = self.messages_collection.update_many(
            {"phone": phone, "chat_id": chat_id, "message_id": {"$in": message_ids}},
            {"$set": {"starred": starred, "updated_at": _now()}}
        )
        return result.modified_count

    # --- Calls ---

    def save_calls(self, phone: str, calls: Iterable[Dict[str, Any]]) -> int:
        if not self.enabled:
            return 0
        now = _now()
        ops = []
        for call in calls:
            call_id = call.get("id")
            chat_id = call.get("chatId") or call.get("from")
            if not call_id or not chat_id:
                continue
            ops.append(UpdateOne(
                {"phone": phone, "chat_id": chat_id, "message_id": call_id},
                {
                    "$set": {
                        "message_type": "call",
                        "status": call.get("status"),
                        "message": {"call": {
                            "from": call.get("from"),
                            "isVideo": bool(call.get("isVideo")),
                            "isGroup": bool(call.get("isGroup")),
                            "offline": bool(call.get("offline")),
                        }},
                        "updated_at": now,
                    },
                    "$setOnInsert": {
                        "from_me": False,
                        "key": {"remoteJid": chat_id, "id": call_id, "fromMe": False},
                        "timestamp": to_unix_seconds(call.get("date")),
                        "text": "",
                        "starred": False,
                        "created_at": now,
                    },
                },
                upsert=True
            ))
        return self._bulk(self.messages_collection, ops)

    def call_history(self, phone: str, limit: int = 100) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        calls = []
        cursor = self.messages_collection.find({"phone": phone, "message_type": "call"}).sort("timestamp", DESCENDING).limit(limit)
        for doc in cursor:
            call = (doc.get("message") or {}).get("call", {})
            calls.append({
                "id": doc["message_id"],
                "from": "me" if doc.get("from_me") else doc["chat_id"],
                "to": doc["chat_id"] if doc.get("from_me") else "me",
                "timestamp": doc.get("timestamp", 0),
                "isVideo": call.get("isVideo", False),
                "isGroup": call.get("isGroup", False),
                "status": doc.get("status"),
            })
        return calls

    # --- Internals ---

    @staticmethod
    def _bulk(collection, ops) -> int:
        if not ops:
            return 0
        try:
            result = collection.bulk_write(ops, ordered=False)
        except PyMongoError as e:
            logger.error(f"Bulk write to {collection.name} failed: {e}")
            return 0
        return result.upserted_count + result.modified_count
