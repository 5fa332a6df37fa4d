# COLLECTION: Chats
# PURPOSE: Chat list per phone, kept current from chats.* socket events

chat_validator = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["phone", "chat_id"],
        "properties": {
            "phone": {
                "bsonType": "string",
                "description": "Owning session phone number"
            },
            "chat_id": {
                "bsonType": "string",
                "description": "Chat JID (user@s.whatsapp.net, group@g.us, list@broadcast, channel@newsletter)"
            },
            "name": {"bsonType": ["string", "null"]},
            "profile_pic_url": {"bsonType": ["string", "null"]},
            "unread_count": {
                "bsonType": ["int", "long"],
                "minimum": 0
            },
            "last_message_timestamp": {
                "bsonType": ["int", "long", "double"],
                "description": "Unix seconds of the last message"
            },
            "last_message": {"bsonType": ["object", "null"]},
            "is_group": {"bsonType": "bool"},
            "is_archived": {"bsonType": "bool"},
            "is_pinned": {"bsonType": "bool"},
            "is_muted": {"bsonType": "bool"},
            "mute_expiry": {
                "bsonType": ["int", "long", "double", "null"],
                "description": "Mute end in epoch milliseconds"
            },
            "labels": {
                "bsonType": "array",
                "items": {"bsonType": "string"}
            },
            "created_at": {"bsonType": "date"},
            "updated_at": {"bsonType": "date"}
        }
    }
}
