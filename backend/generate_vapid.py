#!/usr/bin/env python3
"""
Генератор пары ключей VAPID

Использование:
    python generate_vapid.py --subject mailto:admin@example.com
    python generate_vapid.py --format raw --env
"""
import argparse
import sys

from pushrelay.webpush.exceptions import InputError
from pushrelay.webpush.vapid import generate_application_key_pair


def main():
    parser = argparse.ArgumentParser(description="Генерация пары ключей VAPID (P-256)")
    parser.add_argument("--subject", "-s", type=str, default="mailto:admin@example.com",
                        help="VAPID subject (mailto: или https://)")
    parser.add_argument("--format", "-f", type=str, default="pkcs8", choices=["pkcs8", "raw"],
                        help="Формат приватного ключа")
    parser.add_argument("--env", action="store_true",
                        help="Вывести в формате .env")

    args = parser.parse_args()

    try:
        key_pair = generate_application_key_pair(args.subject)
    except InputError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    public_key = key_pair.public_key_b64
    private_key = key_pair.export_private_key(args.format)

    if args.env:
        print(f"VAPID_SUBJECT={key_pair.subject}")
        print(f"VAPID_PUBLIC_KEY={public_key}")
        print(f"VAPID_PRIVATE_KEY={private_key}")
        return 0

    print("✅ Пара ключей VAPID создана\n")
    print("🔑 VAPID публичный ключ (applicationServerKey):")
    print(public_key)
    print("")
    print(f"🔐 VAPID приватный ключ ({args.format}):")
    print(private_key)
    print("")
    print("📧 VAPID subject:")
    print(key_pair.subject)
    print("")
    print("💡 Пример поля vapid для POST /api/send:")
    print(f'{{"subject": "{key_pair.subject}", "public_key": "{public_key}", "private_key": "{private_key}"}}')
    return 0


if __name__ == "__main__":
    sys.exit(main())
