# mint_relay/metadata.py

import time

from mint_relay.config import Config

IPFS_SCHEME = "ipfs://"


def ipfs_uri(cid):
    """Returns ipfs://<cid>, leaving values that already carry the scheme alone."""
    if cid.startswith(IPFS_SCHEME):
        return cid
    return f"{IPFS_SCHEME}{cid}"


def build_public_metadata(patient_name, photo_cid=None):
    """
    Builds the public ERC-721 token metadata shown by wallets and marketplaces.
    Only the patient name is exposed here; the record itself goes in the private metadata.
    """
    return {
        "name": f"Medical card: {patient_name}",
        "description": f"Patient: {patient_name}",
        "image": ipfs_uri(photo_cid) if photo_cid else Config.DEFAULT_IMAGE_URI,
        "external_url": f"{Config.CARD_EXTERNAL_URL}/{int(time.time() * 1000)}",
    }


def build_private_metadata(form, document_cids=(), patient_name=None):
    """Builds the private record metadata from the submitted form fields."""
    if patient_name is None:
        patient_name = (form.get("patientName") or "").strip()
    return {
        "fullName": patient_name,
        "birthDate": form.get("birthDate"),
        "diagnosis": form.get("diagnosis"),
        "additionalInfo": form.get("additionalInfo"),
        "documents": [ipfs_uri(cid) for cid in document_cids],
    }
