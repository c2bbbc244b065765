# mint_relay/app.py

import traceback

from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from web3 import Web3  # For address validation

# --- Configuration ---
from mint_relay.config import Config

# --- External Service Clients ---
from mint_relay.chain import connect_to_blockchain, get_minter_address, mint_medical_card
from mint_relay.errors import MintRelayError
from mint_relay.metadata import (
    build_private_metadata,
    build_public_metadata,
    ipfs_uri,
)
from mint_relay.payments import get_payment_token, verify_signature
from mint_relay.pending import PendingMintStore
from mint_relay.pinning import pin_file_to_ipfs, pin_json_to_ipfs

# --- Constants ---
ALLOWED_EXTENSIONS = {'txt', 'pdf', 'png', 'jpg', 'jpeg', 'gif', 'webp', 'json', 'xml', 'dcm', 'md'}
REQUIRED_FIELDS = ('patientName', 'userAddress')

# --- Flask App Initialization ---
app = Flask(__name__)
app.config.from_object(Config)
CORS(app, origins=[Config.FRONTEND_URL])

# Payment token -> minting parameters awaiting the Xsolla webhook
pending_mints = PendingMintStore(ttl_seconds=Config.PENDING_MINT_TTL_SECONDS)


class ValidationError(Exception):
    """Bad form input; reported to the client as 400."""

# --- Helper Functions ---

def allowed_file(filename):
    """Checks if the file extension is allowed."""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _uploaded_documents():
    """Collects documents sent either as documents[] or documents."""
    files = request.files.getlist('documents[]') + request.files.getlist('documents')
    return [f for f in files if f and f.filename]


def _check_upload(file):
    if not allowed_file(file.filename):
        raise ValidationError(f"File type not allowed: {file.filename}")


def _validate_form(form):
    """Checks required fields and the payer address."""
    missing = [name for name in REQUIRED_FIELDS if not (form.get(name) or '').strip()]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
    if not Web3.is_address(form['userAddress'].strip()):
        raise ValidationError("Invalid userAddress: not an Ethereum address.")


def _mint_params_from_notification(body):
    """
    Pulls (userAddress, publicCid, privateCid) out of a user_paid notification.
    Custom parameters win; otherwise the pending mint recorded for the payment token is used.
    Also returns the token and the claimed pending record so a failed mint can put it back.
    """
    purchase = body.get('purchase') or {}
    params = purchase.get('custom_parameters') or body.get('custom_parameters') or {}
    user_address = params.get('userAddress')
    public_cid = params.get('publicCid')
    private_cid = params.get('privateCid')

    token = purchase.get('token') or body.get('token')
    record = pending_mints.pop(token) if token else None

    if not (user_address and public_cid and private_cid) and record:
        print("Webhook: Using pending mint recorded for payment token.")
        user_address = record.user_address
        public_cid = record.public_cid
        private_cid = record.private_cid

    return (user_address, public_cid, private_cid), token, record


def _release_pending(token, record):
    """Puts a claimed pending mint back so Xsolla's retry of the webhook can mint it."""
    if token and record:
        pending_mints.restore(token, record)
        print("Webhook: Pending mint restored for retry.")

# --- Error Handlers ---

@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(e):
    return jsonify({"error": f"Upload too large (limit {Config.MAX_UPLOAD_MB}MB)."}), 413

# --- Routes ---

@app.route('/')
def index():
    """Liveness check."""
    minter = get_minter_address() or 'not configured'
    return f"Xsolla-Minter Server is running on port {Config.PORT}. Minter: {minter}."


@app.route('/api/prepare-medical-card', methods=['POST'])
def prepare_medical_card():
    """
    Pins the card photo, documents and metadata to IPFS, then asks Xsolla for
    a payment token. The mint itself happens when the payment webhook arrives.
    """
    try:
        print("--- Receiving medical card data from frontend ---")
        form = request.form
        _validate_form(form)
        user_address = form['userAddress'].strip()
        patient_name = form['patientName'].strip()

        photo = request.files.get('photo')
        if photo and not photo.filename:
            photo = None
        documents = _uploaded_documents()
        for upload in ([photo] if photo else []) + documents:
            _check_upload(upload)

        # 1. Photo (optional, default image otherwise)
        photo_cid = None
        if photo:
            photo_cid = pin_file_to_ipfs(photo.filename, photo.read(), name='patient_photo')

        # 2. Supporting documents
        document_cids = [pin_file_to_ipfs(doc.filename, doc.read()) for doc in documents]

        # 3. Public and private metadata
        public_metadata = build_public_metadata(patient_name, photo_cid)
        private_metadata = build_private_metadata(form, document_cids, patient_name=patient_name)
        public_cid = pin_json_to_ipfs(public_metadata, name='public_metadata')
        private_cid = pin_json_to_ipfs(private_metadata, name='private_metadata')

        # 4. Pay Station token; the CIDs travel to the webhook as custom parameters
        token = get_payment_token(user_address, public_cid, private_cid, Config.CURRENCY)
        pending_mints.add(token, user_address, public_cid, private_cid)
        print(f"Payment token issued for {user_address}. Public CID: {public_cid}")

        return jsonify({
            "token": token,
            "publicCid": ipfs_uri(public_cid),
            "privateCid": ipfs_uri(private_cid),
        })

    except ValidationError as e:
        print(f"Prepare medical card rejected: {e}")
        return jsonify({"error": str(e)}), 400
    except HTTPException:
        raise
    except Exception as e:
        print(f"CRITICAL BACKEND ERROR: {e}")
        traceback.print_exc()
        return jsonify({"error": str(e), "detail": repr(e)}), 500


@app.route('/webhook/xsolla', methods=['POST'])
def xsolla_webhook():
    """Payment notifications from Xsolla. Mints the card on user_paid."""
    raw_body = request.get_data()
    if not verify_signature(raw_body, request.headers.get('Authorization')):
        print("Warning: Invalid Xsolla signature received.")
        return "Forbidden", 403

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return "Invalid JSON", 400

    notification_type = body.get('notification_type')
    if notification_type != 'user_paid':
        print(f"Webhook: Ignoring notification '{notification_type}'.")
        return "ok", 200

    token, record = None, None
    try:
        (user_address, public_cid, private_cid), token, record = _mint_params_from_notification(body)
        if not user_address or not public_cid or not private_cid:
            print("Webhook: Missing custom parameters for mint.")
            return "Missing data", 400

        print(f"Payment confirmed for {user_address}. Minting NFT...")
        result = mint_medical_card(
            user_address,
            ipfs_uri(public_cid),
            ipfs_uri(private_cid),
        )
        print(f"NFT Minted for {user_address}. Tx: {result.tx_hash}, Token ID: {result.token_id}")
        return "ok", 200

    except MintRelayError as e:
        print(f"Webhook error: {e}")
        _release_pending(token, record)
        return "Error", 500
    except Exception as e:
        print(f"Webhook error: {e}")
        traceback.print_exc()
        _release_pending(token, record)
        return "Error", 500


def main():
    """Runs the development server with startup checks."""
    startup_warnings = []
    if not connect_to_blockchain(): startup_warnings.append("Blockchain connection FAILED (minting unavailable).")
    if not Config.PINATA_API_KEY or not Config.PINATA_SECRET_KEY: startup_warnings.append("Pinata keys not set (uploads will fail).")
    if not Config.XSOLLA_API_KEY: startup_warnings.append("XSOLLA_API_KEY not set (tokens and webhooks will fail).")
    if not Config.XSOLLA_MERCHANT_ID or not Config.XSOLLA_PROJECT_ID: startup_warnings.append("Xsolla merchant/project ID not set.")

    if startup_warnings:
        print("\n--- STARTUP WARNINGS ---")
        for warning in startup_warnings:
            print(f"- {warning}")
        print("----------------------\n")

    print(f"Server running on port {Config.PORT}")
    app.run(host='0.0.0.0', port=Config.PORT)


# --- Main Execution ---
if __name__ == '__main__':
    main()
