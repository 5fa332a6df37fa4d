import logging
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class ChatHistoryManager:
    """Keeps the rolling LLM conversation of every (phone, chat) pair."""

    def __init__(self, mongodb_db, max_messages=50):
        self.max_messages = max_messages
        self.collection = mongodb_db.AI_Chat_History if mongodb_db is not None else None
        # Used when the service runs without a database
        self._memory = {}

    def get_history(self, phone, chat_id):
        if self.collection is None:
            return list(self._memory.get((phone, chat_id), []))
        doc = self.collection.find_one({"phone": phone, "chat_id": chat_id})
        return doc.get("messages", []) if doc else []

    def add_message(self, phone, chat_id, role, content):
        entry = {"role": role, "content": content, "timestamp": datetime.now(timezone.utc)}

        if self.collection is None:
            history = self._memory.setdefault((phone, chat_id), [])
            history.append(entry)
            del history[:-self.max_messages]
            return

        now = entry["timestamp"]
        try:
            self.collection.update_one(
                {"phone": phone, "chat_id": chat_id},
                {
                    "$push": {"messages": {"$each": [entry], "$slice": -self.max_messages}},
                    "$set": {"updated_at": now},
                    "$setOnInsert": {"created_at": now}
                },
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"Error saving AI history for {phone}/{chat_id}: {e}")

    def add_exchange(self, phone, chat_id, question, answer):
        self.add_message(phone, chat_id, "user", question)
        self.add_message(phone, chat_id, "assistant", answer)

    def clear(self, phone, chat_id=None):
        """Clears one chat, or every chat of the phone when chat_id is None."""
        if self.collection is None:
            keys = [k for k in self._memory if k[0] == phone and (chat_id is None or k[1] == chat_id)]
            for key in keys:
                del self._memory[key]
            return {"cleared": len(keys)}

        query = {"phone": phone}
        if chat_id:
            query["chat_id"] = chat_id
        result = self.collection.delete_many(query)
        return {"cleared": result.deleted_count}
