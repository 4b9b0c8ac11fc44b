import os

# Must be set before config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VALKEY_HOST"] = ""
os.environ["VALID_TOKENS"] = "fake-client-token"
os.environ["LOG_FILENAME"] = ""
os.environ["METRICS_ASYNC"] = "false"
