# mint_relay/payments.py

import hashlib
import hmac
import json
import traceback

import requests

from mint_relay.config import Config
from mint_relay.errors import PaymentGatewayError

SIGNATURE_PREFIX = "Signature "

# Pay Station hides these methods for the card purchase
EXCLUDED_PAYMENT_METHODS = ['bankcard', 'paypal']


def build_token_payload(user_address, public_cid, private_cid, currency):
    """Builds the Pay Station token request. The CIDs ride along as custom parameters for the webhook."""
    return {
        'merchant_id': Config.XSOLLA_MERCHANT_ID,
        'project_id': Config.XSOLLA_PROJECT_ID,
        'user': {'id': user_address},
        'purchase': {
            'custom_parameters': {
                'userAddress': user_address,
                'publicCid': public_cid,
                'privateCid': private_cid,
            },
            'checkout': {
                'currency': currency,
                'items': [{'sku': Config.PRODUCT_SKU, 'quantity': 1}],
            },
        },
        'settings': {
            'payment_method_filter': {
                'by': 'payment_method_type',
                'except': EXCLUDED_PAYMENT_METHODS,
            },
        },
    }


def get_payment_token(user_address, public_cid, private_cid, currency=None):
    """
    Requests a Pay Station payment token from Xsolla.
    Returns the token string; raises PaymentGatewayError on any failure.
    """
    if not Config.XSOLLA_MERCHANT_ID or not Config.XSOLLA_API_KEY:
        raise PaymentGatewayError("Server configuration error: Xsolla merchant ID or API key not set.")

    payload = build_token_payload(user_address, public_cid, private_cid, currency or Config.CURRENCY)
    url = f"{Config.XSOLLA_API_URL}/merchants/{Config.XSOLLA_MERCHANT_ID}/payment_token"

    print(f"Requesting Xsolla payment token for {user_address}...")
    try:
        response = requests.post(
            url,
            json=payload,
            auth=(str(Config.XSOLLA_MERCHANT_ID), Config.XSOLLA_API_KEY),  # HTTP Basic
            timeout=30,
        )
    except requests.exceptions.RequestException as e:
        traceback.print_exc()
        raise PaymentGatewayError(f"Could not reach Xsolla: {e}") from e

    try:
        data = response.json()
    except ValueError:
        raise PaymentGatewayError(f"Xsolla Token Error: HTTP {response.status_code} {response.text}")

    token = data.get('token') if isinstance(data, dict) else None
    if token:
        return token

    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get('description'):
        raise PaymentGatewayError(f"Xsolla Token Error: {error['description']}")
    raise PaymentGatewayError(f"Xsolla Token Error: {json.dumps(data)}")


def compute_signature(raw_body, secret):
    """HMAC-SHA1 hex digest of the raw request body."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), raw_body, hashlib.sha1).hexdigest()


def verify_signature(raw_body, authorization_header):
    """
    Checks the Authorization header of an Xsolla webhook ("Signature <hex>").
    Fails closed if the API key is not configured or the header is malformed.
    """
    if not Config.XSOLLA_API_KEY:
        print("Warning: XSOLLA_API_KEY not set. Rejecting webhook.")
        return False
    if not authorization_header or not authorization_header.startswith(SIGNATURE_PREFIX):
        return False

    received = authorization_header[len(SIGNATURE_PREFIX):].strip().lower()
    expected = compute_signature(raw_body, Config.XSOLLA_API_KEY)
    # Header values may carry non-ASCII (latin-1) characters; compare as bytes
    return hmac.compare_digest(expected.encode('ascii'), received.encode('utf-8', 'replace'))
