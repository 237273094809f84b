#!/usr/bin/env python3
"""
Generate (or decode) an encrypted product QR payload for local testing.

Usage:
  python3 scripts/generate_qr_payload.py <product_id> <manufacturer_id> <org_id> [issued_at_ms]
  python3 scripts/generate_qr_payload.py --decode <qr_payload>

The AES passphrase is read from QR_AES_SECRET (same as the service).
"""

import sys
import time

from authenticity.config import get_settings
from authenticity.schemas.verification import QRPayload
from authenticity.services.qr_codec import decrypt_qr_payload, encrypt_qr_payload, qr_fingerprint


def generate(product_id, manufacturer_id, org_id, issued_at_ms=None):
    payload = QRPayload(
        product_id=product_id,
        manufacturer_id=manufacturer_id,
        org_id=org_id,
        ts=issued_at_ms if issued_at_ms is not None else int(time.time() * 1000),
    )
    encrypted = encrypt_qr_payload(payload, get_settings().qr_aes_secret)
    print(encrypted)
    print(f"fingerprint: {qr_fingerprint(encrypted)}", file=sys.stderr)


def decode(encrypted):
    payload = decrypt_qr_payload(encrypted, get_settings().qr_aes_secret)
    if payload is None:
        print("Could not decrypt payload (wrong secret or corrupted data)", file=sys.stderr)
        sys.exit(2)
    print(payload.model_dump_json(by_alias=True, indent=2))


if __name__ == '__main__':
    if len(sys.argv) == 3 and sys.argv[1] == "--decode":
        decode(sys.argv[2])
    elif len(sys.argv) in (4, 5):
        ts = int(sys.argv[4]) if len(sys.argv) == 5 else None
        generate(sys.argv[1], sys.argv[2], sys.argv[3], ts)
    else:
        print(__doc__.strip())
        sys.exit(1)
