# Root conftest.py - loads .env before test collection so CLUSTERLEDGER_*
# settings from a local .env apply to every test session.
from dotenv import load_dotenv
load_dotenv()

# Fixtures from tests/conftest.py are discovered automatically since tests/
# is a subdirectory. Do NOT use pytest_plugins here.
