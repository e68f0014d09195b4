"""
AWS Signature Version 4 request signing

Just enough SigV4 for single-object PUT/GET/DELETE against an
S3-compatible endpoint. The payload is never hashed: every request
is signed with the literal UNSIGNED-PAYLOAD token.
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import urlsplit

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
TERMINATOR = "aws4_request"


@dataclass
class SignedRequest:
    """Headers to send plus the intermediate values, for inspection."""
    headers: Dict[str, str]
    signature: str
    scope: str
    signed_headers: str
    canonical_request: str
    string_to_sign: str


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def signing_key(secret: str, date_stamp: str, region: str, service: str) -> bytes:
    """Derive the per-date, per-region, per-service signing key."""
    k_date = _hmac(f"AWS4{secret}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


def _normalize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k.lower().strip(): " ".join(str(v).strip().split()) for k, v in headers.items()}


def canonical_request(
    method: str,
    path: str,
    headers: Dict[str, str],
    payload_hash: str = UNSIGNED_PAYLOAD,
) -> str:
    """
    Build the canonical request.

    Query strings are never signed; the line stays empty.
    Every header passed in is signed.
    """
    normalized = _normalize_headers(headers)
    names = sorted(normalized)
    canonical_headers = "".join(f"{name}:{normalized[name]}\n" for name in names)

    return "\n".join([
        method.upper(),
        path or "/",
        "",
        canonical_headers,
        ";".join(names),
        payload_hash,
    ])


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/{TERMINATOR}"


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, sha256_hex(canonical)])


def compute_signature(
    method: str,
    path: str,
    headers: Dict[str, str],
    secret_access_key: str,
    amz_date: str,
    region: str,
    service: str,
    payload_hash: str = UNSIGNED_PAYLOAD,
) -> SignedRequest:
    """Sign an already-complete header set (must contain host and x-amz-date)."""
    date_stamp = amz_date[:8]
    scope = credential_scope(date_stamp, region, service)
    canonical = canonical_request(method, path, headers, payload_hash)
    to_sign = string_to_sign(amz_date, scope, canonical)

    key = signing_key(secret_access_key, date_stamp, region, service)
    signature = hmac.new(key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    return SignedRequest(
        headers=_normalize_headers(headers),
        signature=signature,
        scope=scope,
        signed_headers=";".join(sorted(_normalize_headers(headers))),
        canonical_request=canonical,
        string_to_sign=to_sign,
    )


def sign_request(
    method: str,
    url: str,
    access_key_id: str,
    secret_access_key: str,
    headers: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
    region: str = "auto",
    service: str = "s3",
) -> SignedRequest:
    """
    Sign a request for an S3-compatible endpoint.

    Adds host, x-amz-date and x-amz-content-sha256 to the headers and
    returns them with the authorization header set.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    parts = urlsplit(url)

    all_headers = dict(headers or {})
    all_headers["host"] = parts.netloc
    all_headers["x-amz-date"] = amz_date
    all_headers["x-amz-content-sha256"] = UNSIGNED_PAYLOAD

    signed = compute_signature(
        method=method,
        path=parts.path,
        headers=all_headers,
        secret_access_key=secret_access_key,
        amz_date=amz_date,
        region=region,
        service=service,
    )

    signed.headers["authorization"] = (
        f"{ALGORITHM} Credential={access_key_id}/{signed.scope}, "
        f"SignedHeaders={signed.signed_headers}, Signature={signed.signature}"
    )
    return signed
