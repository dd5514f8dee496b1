# auth_gcal.py
# Obtain token.json ahead of time so the server can start with AUTH_MODE=token.
import sys

from dotenv import load_dotenv
load_dotenv()

from calendar_summary.config import load_config
from calendar_summary.errors import CalendarSummaryError
from calendar_summary.services.auth import make_authorizer
from calendar_summary.services.credentials import load_client_config
from calendar_summary.services.token_store import TokenStore

cfg = load_config()
mode = sys.argv[1] if len(sys.argv) > 1 else cfg.auth_mode
try:
    client = load_client_config(cfg.oauth_client_file, cfg.oauth_client_json)
    TokenStore(cfg.token_file, client, make_authorizer(mode)).ensure()
except CalendarSummaryError as e:
    print("❌ Google Calendar auth failed:", e)
    sys.exit(1)
print("✅ Google Calendar auth OK. Token saved at:", cfg.token_file)
