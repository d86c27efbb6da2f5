import os
import sys
from pathlib import Path

# Keep tests deterministic and local-only.
os.environ["ERRBOOK_SKIP_DOTENV"] = "1"
os.environ["ERRBOOK_AI_PROVIDER"] = "mock"
os.environ["ERRBOOK_UPLOAD_DIR"] = "backend/test_uploads"
os.environ["ERRBOOK_AI_TIMEOUT_SECONDS"] = "5"
os.environ["ERRBOOK_AI_RETRY_DELAY_SECONDS"] = "0"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

TEST_DB_PATH = BACKEND_ROOT / "test_errbook.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()
