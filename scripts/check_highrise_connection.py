#!/usr/bin/env python3
"""
Check the Highrise connection for local development.

This script fetches each configured endpoint once, without touching any
subscription state, so you can verify credentials and endpoint names.
"""

import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from highrise_poller.config import get_settings
from highrise_poller.exceptions import FetchError
from highrise_poller.highrise_client import HighriseClient
from highrise_poller.polling.fetcher import EndpointFetcher


async def check_highrise_connection():
    """Fetch every configured endpoint and report what came back."""
    print("🔍 Checking Highrise connection...")

    settings = get_settings()

    print("📋 Configuration:")
    print(f"   Base URL: {settings.base_url}")
    print(f"   Auth type: {settings.auth_type}")
    print(f"   Endpoints: {', '.join(settings.endpoint_list)}")

    client = HighriseClient(settings.client_config)
    if settings.highrise_authorization:
        client.authorize(settings.highrise_authorization)

    fetcher = EndpointFetcher(client, settings.poll_config.endpoint_singulars)

    ok = True
    for endpoint in settings.endpoint_list:
        try:
            result = await fetcher.fetch(endpoint, None)
        except FetchError as e:
            print(f"❌ {endpoint}: {e}")
            ok = False
            continue

        print(f"✅ {endpoint}: {len(result.entities)} {result.entity_kind} records")
        for entity in result.entities[:5]:
            print(f"   - id={entity.entity_id} created_at={entity.created_at}")

    if ok:
        print("\n🎉 Highrise connection check successful!")
    return ok


if __name__ == "__main__":
    import asyncio

    print("🚀 Highrise Poller - Connection Check")
    print("=" * 50)

    if not os.getenv("HIGHRISE_ACCOUNT"):
        print("❌ HIGHRISE_ACCOUNT not set")
        sys.exit(1)

    success = asyncio.run(check_highrise_connection())
    sys.exit(0 if success else 1)
