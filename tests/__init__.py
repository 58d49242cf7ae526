import os

# Stable keys so tokens signed in one test module verify in another
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
