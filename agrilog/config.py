import os
from dotenv import load_dotenv

# Explicitly load .env from the module directory
current_dir = os.path.dirname(os.path.abspath(__file__))
env_path = os.path.join(current_dir, ".env")
load_dotenv(env_path)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

JWT_SECRET = os.getenv("JWT_SECRET", "please_change_this_secret")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))

# AI gateway (OpenAI compatible chat completions)
AI_GATEWAY_URL = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1")
AI_GATEWAY_API_KEY = os.getenv("AI_GATEWAY_API_KEY") or os.getenv("LOVABLE_API_KEY")
AI_GATEWAY_MODEL = os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
OLLAMA_URL = os.getenv("OLLAMA_URL")
OLLAMA_MODELS = [m.strip() for m in os.getenv("OLLAMA_MODELS", "gemma3:4b,llama3.2").split(",") if m.strip()]

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

DEFAULT_ACCESS_DURATION_DAYS = int(os.getenv("DEFAULT_ACCESS_DURATION_DAYS", "30"))
