import os

# Tests never talk to Postgres, Redis, S3 or SMTP.
os.environ.setdefault("LIFECRAFT_USE_IN_MEMORY_BACKENDS", "true")
