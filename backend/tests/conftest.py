"""
Общие фикстуры: ключи подписчика, VAPID ключи, подписка
"""
import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from pushrelay.webpush import base64url
from pushrelay.webpush.ecdh import CURVE, encode_public_key
from pushrelay.webpush.models import PushSubscription
from pushrelay.webpush.vapid import generate_application_key_pair

ENDPOINT = "https://fcm.googleapis.com/fcm/send/dGVzdC1zdWJzY3JpcHRpb24"


@pytest.fixture
def subscriber_private_key():
    """Приватный ключ браузера (UA)"""
    return ec.generate_private_key(CURVE)


@pytest.fixture
def subscriber_public_key(subscriber_private_key):
    return encode_public_key(subscriber_private_key.public_key())


@pytest.fixture
def auth_secret():
    return os.urandom(16)


@pytest.fixture
def subscription(subscriber_public_key, auth_secret):
    return PushSubscription(endpoint=ENDPOINT, p256dh=subscriber_public_key, auth=auth_secret)


@pytest.fixture
def vapid_key_pair():
    return generate_application_key_pair("mailto:admin@example.com")


@pytest.fixture
def subscription_json(subscriber_public_key, auth_secret):
    """Подписка в виде PushSubscription.toJSON()"""
    return {
        "endpoint": ENDPOINT,
        "keys": {
            "p256dh": base64url.encode(subscriber_public_key),
            "auth": base64url.encode(auth_secret),
        },
    }


@pytest.fixture
def vapid_json(vapid_key_pair):
    return {
        "subject": vapid_key_pair.subject,
        "public_key": vapid_key_pair.public_key_b64,
        "private_key": vapid_key_pair.export_private_key("pkcs8"),
    }
