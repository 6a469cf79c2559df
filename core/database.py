from __future__ import annotations

import os

from dotenv import load_dotenv
from pymongo import AsyncMongoClient

load_dotenv()

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "storefront")

client: AsyncMongoClient = AsyncMongoClient(MONGO_URL, serverSelectionTimeoutMS=2000)
db = client[DB_NAME]
