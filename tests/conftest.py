from __future__ import annotations

import os

# Settings are read on first import of app.db.session; tests default to a throwaway SQLite file.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.referral_engine_test.db")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")
