#!/usr/bin/env python
"""Issue an API key for a seller.

The plaintext key is printed once and never stored; only its hash is kept.

Usage:
    SELLER_ID=seller-123 python backend/scripts/create_api_key.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    SELLER_ID: Seller the key authenticates as (required)
    KEY_NAME: Label for the key (default: default)
"""

import os
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from database import session_scope
from auth.api_key import issue_api_key


def main():
    seller_id = os.getenv("SELLER_ID")
    if not seller_id:
        print("ERROR: SELLER_ID environment variable is required")
        print("Example: SELLER_ID=seller-123 python create_api_key.py")
        sys.exit(1)

    key_name = os.getenv("KEY_NAME", "default")

    with session_scope() as session:
        record, plaintext = issue_api_key(session, seller_id, key_name)
        print("API key created")
        print(f"  Seller:  {record.seller_id}")
        print(f"  Name:    {record.name}")
        print(f"  Key id:  {record.id}")
        print(f"  API key: {plaintext}")
        print("Store this key now; it cannot be shown again.")


if __name__ == "__main__":
    main()
