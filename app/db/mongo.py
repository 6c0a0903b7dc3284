from motor.motor_asyncio import AsyncIOMotorClient
from app.config import settings

# Client MongoDB asynchrone
client = AsyncIOMotorClient(settings.MONGO_URL)
db = client[settings.MONGO_DB]

# Collections
incidents_collection = db["moderation_incidents"]
activity_collection = db["activity_logs"]
