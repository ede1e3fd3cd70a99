import os
import tempfile

# Point the engine at a throwaway SQLite file before db.py is imported
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault(
    "DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="pokercrm-tests-"), "test.db")
)
