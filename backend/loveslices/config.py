# loveslices/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Loveslices API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Theme stored on a spoken loveslice when neither the request nor the
    # conversation source supplies one
    default_theme: str = os.getenv("DEFAULT_THEME", "Trust")

    # Input limits
    max_message_length: int = int(os.getenv("MAX_MESSAGE_LENGTH", "4000"))
    max_note_length: int = int(os.getenv("MAX_NOTE_LENGTH", "2000"))

settings = Settings()  # Instantiate configuration
