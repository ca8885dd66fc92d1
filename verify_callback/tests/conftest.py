"""
Pytest configuration for verify_callback. In-memory SQLite and an in-memory session store,
so tests touch neither the filesystem nor Redis.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["VERIFY_DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("SESSION_STORE_URL", None)
os.environ.pop("SUPABASE_WEBHOOK_SECRET", None)
os.environ["MESSAGE_LOCALE"] = "es"
