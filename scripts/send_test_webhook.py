"""
Send a signed test webhook to a running HookRelay instance.

Usage:
    python scripts/send_test_webhook.py
    python scripts/send_test_webhook.py --client clientA --source propertysysA
    python scripts/send_test_webhook.py --secret my-secret --repeat 2
"""
import argparse
import asyncio
import json
import logging

import httpx

from hookrelay.utils.webhook_signatures import SIGNATURE_HEADER, compute_signature

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8080"

SAMPLE_PAYLOAD = {
    "unit_id": "bldg-123-unit-45",
    "tenant_name": "John Smith",
    "lease_start": "2024-01-01",
    "monthly_rent": 2500,
}


async def send_webhook(base_url: str, client_id: str, source: str, secret: str, payload: dict) -> httpx.Response:
    """Sign the exact body bytes and POST them."""
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: compute_signature(secret, body),
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{base_url}/webhooks/{client_id}/{source}", content=body, headers=headers)
        logger.info("Webhook response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Send a signed test webhook")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--client", default="clientA")
    parser.add_argument("--source", default="propertysysA")
    parser.add_argument("--secret", default="test-secret")
    parser.add_argument("--payload", help="JSON body to send (defaults to a sample property update)")
    parser.add_argument("--repeat", type=int, default=1, help="Send the same body N times (dedup check)")
    args = parser.parse_args()

    payload = json.loads(args.payload) if args.payload else SAMPLE_PAYLOAD
    for _ in range(args.repeat):
        await send_webhook(args.base_url, args.client, args.source, args.secret, payload)


if __name__ == "__main__":
    asyncio.run(main())
