# COLLECTION: Contacts
# PURPOSE: Address book per phone, kept current from contacts.* socket events

contact_validator = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["phone", "jid"],
        "additionalProperties": False,
        "properties": {
            "_id": {
                "bsonType": "objectId"
            },
            "phone": {
                "bsonType": "string",
                "description": "Owning session phone number"
            },
            "jid": {
                "bsonType": "string",
                "description": "Contact JID"
            },
            "name": {
                "bsonType": ["string", "null"],
                "description": "Name saved in the address book"
            },
            "notify": {
                "bsonType": ["string", "null"],
                "description": "Push name chosen by the contact"
            },
            "verified_name": {"bsonType": ["string", "null"]},
            "img_url": {"bsonType": ["string", "null"]},
            "created_at": {"bsonType": "date"},
            "updated_at": {"bsonType": "date"}
        }
    }
}
