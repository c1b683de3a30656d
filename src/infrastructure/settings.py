# src/infrastructure/settings.py

import os

from dotenv import load_dotenv

load_dotenv()


ADVERTISEMENT_SLOT_CAPACITY = int(os.getenv("ADVERTISEMENT_SLOT_CAPACITY", "6"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
