"""
config.py
---------

Loads cephcrypto settings from the environment, reading a ``.env`` file
through python-dotenv first. Every setting has a default, so the library
works without any configuration.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Storage
DATA_DIR = os.getenv("CEPHCRYPTO_DATA_DIR", os.path.join(os.getcwd(), ".cephcrypto"))
# Passphrase for private keys at rest in the JSON key store (optional)
STORE_SECRET = os.getenv("CEPHCRYPTO_STORE_SECRET") or None

# Ciphers
DEFAULT_CIPHER_VERSION = int(os.getenv("CEPHCRYPTO_CIPHER_VERSION", 2))

# Logging
LOG_DIR = os.getenv("CEPHCRYPTO_LOG_DIR", os.path.join(os.getcwd(), "logs"))
LOG_LEVEL = os.getenv("CEPHCRYPTO_LOG_LEVEL", "INFO").upper()

# HTTP service
HOST = os.getenv("CEPHCRYPTO_HOST", "127.0.0.1")
PORT = int(os.getenv("CEPHCRYPTO_PORT", 8000))
