"""Configuration management for Pagewise Vector Search."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
EMBEDDINGS_TABLE = os.getenv("EMBEDDINGS_TABLE", "embeddings")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_API_URL = os.getenv(
    "EMBEDDING_API_URL",
    f"https://api-inference.huggingface.co/models/{EMBEDDING_MODEL}"
)
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "60"))
POOLING_STRATEGY = os.getenv("POOLING_STRATEGY", "mean")
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "cl100k_base")

# Chunking Configuration
TOKEN_BUDGET = int(os.getenv("TOKEN_BUDGET", "128"))  # tokens per chunk before splitting
OVERLAP_PERCENT = int(os.getenv("OVERLAP_PERCENT", "10"))

# Extraction Configuration
EXTRACTION_WORKERS = int(os.getenv("EXTRACTION_WORKERS", "5"))
URL_FETCH_TIMEOUT = float(os.getenv("URL_FETCH_TIMEOUT", "30"))

# Retrieval Configuration
TOP_WINDOW = int(os.getenv("TOP_WINDOW", "10"))  # candidates handed to the refiner
TOP_FINAL = int(os.getenv("TOP_FINAL", "5"))
REFINE_ENABLED = os.getenv("REFINE_ENABLED", "true").lower() in ("1", "true", "yes")
REFINE_OVERLAP_PERCENT = int(os.getenv("REFINE_OVERLAP_PERCENT", "55"))

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
