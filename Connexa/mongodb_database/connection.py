import logging
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from Connexa.mongodb_database.session_db.session_validator import session_validator
from Connexa.mongodb_database.chat_db.chat_validator import chat_validator
from Connexa.mongodb_database.contact_db.contact_validator import contact_validator
from Connexa.mongodb_database.message_db.message_validator import message_validator
from Connexa.mongodb_database.ai_chat_history_db.ai_chat_history_validator import ai_chat_history_validator

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "Sessions": (session_validator, [
        ([("phone", ASCENDING)], {"unique": True}),
    ]),
    "Chats": (chat_validator, [
        ([("phone", ASCENDING), ("chat_id", ASCENDING)], {"unique": True}),
        ([("phone", ASCENDING), ("last_message_timestamp", DESCENDING)], {}),
    ]),
    "Contacts": (contact_validator, [
        ([("phone", ASCENDING), ("jid", ASCENDING)], {"unique": True}),
    ]),
    "Messages": (message_validator, [
        ([("phone", ASCENDING), ("chat_id", ASCENDING), ("message_id", ASCENDING)], {"unique": True}),
        ([("phone", ASCENDING), ("chat_id", ASCENDING), ("timestamp", DESCENDING)], {}),
        ([("phone", ASCENDING), ("timestamp", DESCENDING)], {}),
    ]),
    "AI_Chat_History": (ai_chat_history_validator, [
        ([("phone", ASCENDING), ("chat_id", ASCENDING)], {"unique": True}),
    ]),
}

client = None


def connect_db(uri, db_name):
    """
    Connects to MongoDB and prepares the collections.
    Returns the database handle, or None when the service has to run without persistence.
    """
    global client

    if client is not None:
        logger.info("MongoDB already connected")
        return client[db_name]

    if not uri:
        logger.warning("MONGODB_URI not found in environment variables. Running without database.")
        return None

    try:
        mongo_client = MongoClient(
            uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=45000
        )
        mongo_client.admin.command('ping')
    except PyMongoError as e:
        logger.error(f"MongoDB connection failed: {e}")
        logger.warning("Running without database - data will not persist")
        return None

    client = mongo_client
    logger.info("MongoDB connected successfully")

    db = client[db_name]
    ensure_collections(db)
    return db


def ensure_collections(db):
    existing = set(db.list_collection_names())
    for name, (validator, indexes) in COLLECTIONS.items():
        if name in existing:
            db.command("collMod", name, validator=validator)
        else:
            db.create_collection(name, validator=validator)
        for keys, options in indexes:
            db[name].create_index(keys, **options)


def is_db_connected():
    return client is not None


def close_db():
    global client
    if client is not None:
        client.close()
        client = None
        logger.info("MongoDB disconnected")
