# COLLECTION: AI_Chat_History
# PURPOSE: Rolling LLM conversation per chat, feeds generate/auto-reply/summarize

ai_chat_history_validator = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["phone", "chat_id", "messages"],
        "additionalProperties": False,
        "properties": {
            "_id": {
                "bsonType": "objectId"
            },
            "phone": {"bsonType": "string"},
            "chat_id": {"bsonType": "string"},
            "messages": {
                "bsonType": "array",
                "description": "Chronological list, capped to MAX_HISTORY_MESSAGES",
                "items": {
                    "bsonType": "object",
                    "required": ["role", "content", "timestamp"],
                    "additionalProperties": False,
                    "properties": {
                        "role": {
                            "enum": ["user", "assistant", "system"]
                        },
                        "content": {"bsonType": "string"},
                        "timestamp": {"bsonType": "date"}
                    }
                }
            },
            "created_at": {"bsonType": "date"},
            "updated_at": {"bsonType": "date"}
        }
    }
}
