import os

# Settings are read at import time; point everything at local, side-effect free backends.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REALTIME_ENABLED"] = "false"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["OPERATOR_EMAIL"] = "ops@triply.test"
