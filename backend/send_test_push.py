#!/usr/bin/env python3
"""
Тестовый вызов Push Relay API

Отправляет пример запроса на запущенный relay и печатает ответ.
Ключи VAPID генерируются на лету, подписка берётся из JSON файла
(PushSubscription.toJSON() из браузера) или из аргументов.

Использование:
    python send_test_push.py --subscription subscription.json
    python send_test_push.py --url https://relay.example.com/api/send --subscription sub.json
"""
import argparse
import asyncio
import json
import sys

import httpx

from pushrelay.webpush.vapid import generate_application_key_pair


def build_request(subscription: dict, site_key: str, subject: str) -> dict:
    key_pair = generate_application_key_pair(subject)
    return {
        "site_key": site_key,
        "vapid": {
            "subject": key_pair.subject,
            "public_key": key_pair.public_key_b64,
            "private_key": key_pair.export_private_key("pkcs8"),
        },
        "subscription": {
            "endpoint": subscription["endpoint"],
            "keys": {
                "p256dh": subscription["keys"]["p256dh"],
                "auth": subscription["keys"]["auth"],
            },
        },
        "payload": {
            "title": "Тестовое уведомление",
            "body": "Это тестовое push уведомление",
            "icon": "/icon.png",
            "data": {"url": "/"},
        },
    }


async def send(url: str, body: dict) -> int:
    print(f"📤 Отправка запроса на: {url}")
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(url, json=body)
    except httpx.ConnectError:
        print("💥 Relay недоступен. Запустите его: uvicorn pushrelay.main:app --port 8788")
        return 2
    except httpx.HTTPError as e:
        print(f"💥 Ошибка запроса: {type(e).__name__}")
        return 2

    print(f"📊 Статус ответа: {response.status_code}")
    print(f"📨 Тело ответа: {response.text}")

    if response.is_success:
        print("\n✅ Push отправлен")
        return 0
    print("\n❌ Отправка не удалась, проверьте сообщение об ошибке")
    return 1


def main():
    parser = argparse.ArgumentParser(description="Тестовый вызов POST /api/send")
    parser.add_argument("--url", "-u", type=str, default="http://localhost:8788/api/send",
                        help="URL endpoint relay")
    parser.add_argument("--subscription", type=str, required=True,
                        help="JSON файл с PushSubscription браузера")
    parser.add_argument("--site-key", type=str, default="test-site", help="site_key запроса")
    parser.add_argument("--subject", type=str, default="mailto:test@example.com", help="VAPID subject")

    args = parser.parse_args()

    with open(args.subscription, 'r', encoding='utf-8') as f:
        subscription = json.load(f)

    body = build_request(subscription, args.site_key, args.subject)
    return asyncio.run(send(args.url, body))


if __name__ == "__main__":
    sys.exit(main())
