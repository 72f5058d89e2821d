"""
Replay a sample Telegram update to test the webhook endpoint.

Useful for exercising the dialogue locally without a public webhook URL
(run the API with TELEGRAM_DRY_RUN=true to see outbound calls in the log).

Usage:
    python scripts/webhook_replay.py [--text "/start"] [--callback "kind:competition"]
                                     [--photo FILE_UNIQUE_ID] [--user USER_ID]
"""

import argparse
import sys
import time
from pathlib import Path

# Add app directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.core.config import settings

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _message(user_id: int, **fields) -> dict:
    message = {
        "message_id": int(time.time()),
        "date": int(time.time()),
        "chat": {"id": user_id, "type": "private"},
        "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
    }
    message.update(fields)
    return message


def create_text_update(user_id: int, text: str, update_id: int) -> dict:
    return {"update_id": update_id, "message": _message(user_id, text=text)}


def create_photo_update(user_id: int, file_unique_id: str, update_id: int) -> dict:
    """Photo message with a small and a large variant (the bot keeps the large one)."""
    photo = [
        {"file_id": f"{file_unique_id}-s", "file_unique_id": f"{file_unique_id}s", "file_size": 1000},
        {"file_id": f"{file_unique_id}-l", "file_unique_id": file_unique_id, "file_size": 90000},
    ]
    return {"update_id": update_id, "message": _message(user_id, photo=photo)}


def create_callback_update(user_id: int, data: str, update_id: int) -> dict:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"replay-{update_id}",
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "message": _message(user_id, text="prompt"),
            "data": data,
        },
    }


def send_update(payload: dict, base_url: str) -> bool:
    """POST the update to the webhook endpoint; returns True on HTTP 200."""
    webhook_url = f"{base_url}/webhooks/telegram"
    headers = {}
    if settings.telegram_webhook_secret:
        headers[SECRET_TOKEN_HEADER] = settings.telegram_webhook_secret

    print(f"Sending update {payload['update_id']} to {webhook_url}")
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.post(webhook_url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        print(f"Error sending update: {e}")
        return False

    print(f"Status: {response.status_code}")
    print(f"Body: {response.text}")
    return response.status_code == 200


def main():
    parser = argparse.ArgumentParser(description="Replay a Telegram webhook update")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--text", type=str, default="/start", help="Text message content")
    group.add_argument("--callback", type=str, help="Button callback_data, e.g. action:done")
    group.add_argument("--photo", type=str, help="Photo file_unique_id")
    parser.add_argument("--user", type=int, default=1000001, help="Sender user id")
    parser.add_argument("--update-id", type=int, default=None, help="Fixed update_id (test dedup)")
    parser.add_argument("--base-url", type=str, default="http://localhost:8000")
    args = parser.parse_args()

    update_id = args.update_id or int(time.time() * 1000) % 2_000_000_000
    if args.callback:
        payload = create_callback_update(args.user, args.callback, update_id)
    elif args.photo:
        payload = create_photo_update(args.user, args.photo, update_id)
    else:
        payload = create_text_update(args.user, args.text, update_id)

    sys.exit(0 if send_update(payload, args.base_url) else 1)


if __name__ == "__main__":
    main()
