import os

# Settings are read once at import time, set them before the app is imported
os.environ.setdefault("RATE_LIMIT", "1000/minute")
os.environ.setdefault("LOG_LEVEL", "WARNING")
