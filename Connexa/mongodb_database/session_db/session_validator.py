# COLLECTION: Sessions
# PURPOSE: One document per linked phone number, mirrors the in-process session state

session_validator = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["phone", "connected", "updated_at"],
        "additionalProperties": False,
        "properties": {
            "_id": {
                "bsonType": "objectId"
            },
            "phone": {
                "bsonType": "string",
                "description": "Normalised phone number (no '+', no spaces). Unique key"
            },
            "connected": {
                "bsonType": "bool",
                "description": "True while the WhatsApp socket is open"
            },
            "state": {
                "enum": ["connecting", "awaiting_pairing", "open", "closed", "logged_out"],
                "description": "Lifecycle state of the session"
            },
            "qr_code": {
                "bsonType": ["string", "null"],
                "description": "Last QR payload offered for pairing"
            },
            "link_code": {
                "bsonType": ["string", "null"],
                "description": "Pairing code for phone-number linking"
            },
            "error": {
                "bsonType": ["string", "null"],
                "description": "Last connection error"
            },
            "last_connected": {
                "bsonType": ["date", "null"],
                "description": "When the socket last reached 'open'"
            },
            "user_data": {
                "bsonType": ["object", "null"],
                "description": "Own account info reported by the socket (id, name)"
            },
            "created_at": {"bsonType": "date"},
            "updated_at": {"bsonType": "date"}
        }
    }
}
