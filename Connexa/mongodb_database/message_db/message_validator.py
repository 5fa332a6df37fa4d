# COLLECTION: Messages
# PURPOSE: Message metadata per chat, written from messages.upsert / history sync

message_validator = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["phone", "chat_id", "message_id"],
        "properties": {
            "phone": {
                "bsonType": "string",
                "description": "Owning session phone number"
            },
            "chat_id": {
                "bsonType": "string",
                "description": "key.remoteJid"
            },
            "message_id": {
                "bsonType": "string",
                "description": "key.id"
            },
            "from_me": {"bsonType": "bool"},
            "participant": {"bsonType": ["string", "null"]},
            "message_type": {
                "bsonType": ["string", "null"],
                "description": "First content key, e.g. conversation, imageMessage"
            },
            "text": {
                "bsonType": ["string", "null"],
                "description": "Extracted text or caption, used by search"
            },
            "timestamp": {
                "bsonType": ["int", "long", "double"],
                "description": "messageTimestamp in unix seconds"
            },
            "status": {"bsonType": ["string", "null"]},
            "starred": {"bsonType": "bool"},
            "key": {"bsonType": "object"},
            "message": {"bsonType": ["object", "null"]},
            "push_name": {"bsonType": ["string", "null"]},
            "created_at": {"bsonType": "date"},
            "updated_at": {"bsonType": "date"}
        }
    }
}
