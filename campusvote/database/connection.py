import logging

from pymongo import ASCENDING, DESCENDING, MongoClient

from ..config import (
    ADMINS_COLLECTION_NAME,
    ELECTIONS_COLLECTION_NAME,
    MONGO_DB,
    MONGO_URI,
    STUDENTS_COLLECTION_NAME,
)

logger = logging.getLogger(__name__)


class MongoConnector:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super(MongoConnector, cls).__new__(cls)
            try:
                # tz_aware so stored election windows come back as UTC-aware datetimes
                instance.client = MongoClient(MONGO_URI, tz_aware=True)
                instance.db = instance.client[MONGO_DB]
                instance.elections_collection = instance.db[ELECTIONS_COLLECTION_NAME]
                instance.students_collection = instance.db[STUDENTS_COLLECTION_NAME]
                instance.admins_collection = instance.db[ADMINS_COLLECTION_NAME]

                instance.elections_collection.create_index("election_id", unique=True)
                instance.elections_collection.create_index([("created_at", DESCENDING)])
                instance.elections_collection.create_index([("end_date", ASCENDING)])
                instance.students_collection.create_index("studentId", unique=True)
                instance.students_collection.create_index("email", unique=True)
                instance.admins_collection.create_index("email", unique=True)
                instance.admins_collection.create_index("adminId", unique=True)
                instance.client.server_info()
                logger.info(f"Connected to MongoDB: {MONGO_DB}")
            except Exception as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise
            cls._instance = instance
        return cls._instance

    def close(self):
        self.client.close()
        MongoConnector._instance = None
        logger.info("MongoDB connection closed")


def election_collection():
    return MongoConnector().elections_collection


def student_collection():
    return MongoConnector().students_collection


def admin_collection():
    return MongoConnector().admins_collection
