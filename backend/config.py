import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables - explicitly look in backend directory first
backend_dir = Path(__file__).parent
load_dotenv(dotenv_path=backend_dir / ".env")
load_dotenv()

# Check if running in serverless environment (Vercel)
IS_SERVERLESS = os.getenv("VERCEL") == "1" or os.getenv("AWS_LAMBDA_FUNCTION_NAME") is not None

# Static chapter files live at BOOKS_DIR/<book_slug>/<slug>.html
BOOKS_DIR = Path(os.getenv("BOOKS_DIR", "public/books"))

SECRET_KEY = os.getenv("SECRET_KEY", "change_this_secret")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Reader timings (seconds)
READER_IDLE_TIMEOUT_SECONDS = float(os.getenv("READER_IDLE_TIMEOUT_SECONDS", "60"))
READER_ACTIVITY_POLL_SECONDS = float(os.getenv("READER_ACTIVITY_POLL_SECONDS", "10"))
READER_TICK_SECONDS = float(os.getenv("READER_TICK_SECONDS", "1"))
READER_SAVE_INTERVAL_SECONDS = float(os.getenv("READER_SAVE_INTERVAL_SECONDS", "5"))
READER_SELECTION_SETTLE_SECONDS = float(os.getenv("READER_SELECTION_SETTLE_SECONDS", "0.2"))

# Scroll percentage at which a chapter counts as read
READER_COMPLETION_THRESHOLD = int(os.getenv("READER_COMPLETION_THRESHOLD", "90"))
