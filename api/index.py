"""
Vercel serverless function handler for the Marginalia backend
"""
import sys
import os
from pathlib import Path

# Set Vercel environment flag before any imports
os.environ["VERCEL"] = "1"

# Add backend directory to path
backend_dir = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

# Load environment variables from Vercel (they're already in os.environ)
# But also try to load from .env if it exists (for local testing)
from dotenv import load_dotenv
load_dotenv()

from mangum import Mangum

# Import the FastAPI app (this will detect serverless mode)
from main import app

# Lifespan events are unreliable in serverless
handler = Mangum(app, lifespan="off")
