# mint_relay/pinning.py

import json
import traceback

import requests
from werkzeug.utils import secure_filename

from mint_relay.config import Config
from mint_relay.errors import PinningError

PIN_TIMEOUT = 120  # Seconds; large photos take a while


def _auth_headers():
    """Builds Pinata key headers, failing early if keys are not configured."""
    if not Config.PINATA_API_KEY or not Config.PINATA_SECRET_KEY:
        raise PinningError("Server configuration error: Pinata API keys not set.")
    return {
        'pinata_api_key': Config.PINATA_API_KEY,
        'pinata_secret_api_key': Config.PINATA_SECRET_KEY,
    }


def _extract_cid(response, what):
    """Checks the Pinata response and returns its IpfsHash."""
    try:
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        if status == 401:
            raise PinningError("Pinata authentication failed. Check API keys.", status_code=401) from e
        raise PinningError(f"Failed to pin {what} via Pinata: {e} | Status: {status}", status_code=status) from e

    try:
        data = response.json()
    except ValueError as e:
        raise PinningError(f"Pinata returned a non-JSON response for {what}: {response.text}") from e

    cid = data.get('IpfsHash') if isinstance(data, dict) else None
    if not cid:
        raise PinningError(f"Pinata upload failed for {what}: 'IpfsHash' not found.")
    return cid


def pin_file_to_ipfs(filename, content, name=None):
    """
    Pins raw file bytes to IPFS through Pinata.
    Returns the CID of the pinned file; raises PinningError on failure.
    """
    safe_name = secure_filename(filename or '') or 'upload'
    metadata = {'name': name or safe_name}
    files_payload = {'file': (safe_name, content)}
    data = {'pinataMetadata': json.dumps(metadata)}

    print(f"Pinning file '{safe_name}' ({len(content)} bytes) to Pinata...")
    try:
        response = requests.post(
            f"{Config.PINATA_API_URL}/pinning/pinFileToIPFS",
            files=files_payload,
            data=data,
            headers=_auth_headers(),
            timeout=PIN_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        traceback.print_exc()
        raise PinningError(f"Could not reach Pinata: {e}") from e

    cid = _extract_cid(response, f"file '{safe_name}'")
    print(f"File pinned. CID: {cid}")
    return cid


def pin_json_to_ipfs(obj, name=None):
    """Pins a JSON document to IPFS through Pinata and returns its CID."""
    payload = {'pinataContent': obj}
    if name:
        payload['pinataMetadata'] = {'name': name}

    try:
        response = requests.post(
            f"{Config.PINATA_API_URL}/pinning/pinJSONToIPFS",
            json=payload,
            headers=_auth_headers(),
            timeout=PIN_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        traceback.print_exc()
        raise PinningError(f"Could not reach Pinata: {e}") from e

    cid = _extract_cid(response, f"JSON '{name or 'metadata'}'")
    print(f"JSON pinned. CID: {cid}")
    return cid


def check_authentication():
    """Returns True if Pinata accepts the configured keys."""
    try:
        response = requests.get(
            f"{Config.PINATA_API_URL}/data/testAuthentication",
            headers=_auth_headers(),
            timeout=30,
        )
        return response.status_code == 200
    except PinningError as e:
        print(f"Pinata auth check skipped: {e}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"Pinata auth check failed: {e}")
        return False

