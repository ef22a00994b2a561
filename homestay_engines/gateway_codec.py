"""
homestay_engines.gateway_codec -- HimKosh treasury payload codec.

Responsibility:
    Builds the pipe-delimited request strings the treasury gateway expects,
    computes and verifies the MD5 checksum, encrypts and decrypts payloads
    with the shared AES key, and parses gateway responses.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The key is supplied as
    bytes; reading the key file is the configuration layer's job.

Wire format:
    core  = DeptID=..|DeptRefNo=..|TotalAmount=..|TenderBy=..|AppRefNo=..
            |Head1=..|Amount1=..[|Head2=..|Amount2=..]|Ddo=..
            |PeriodFrom=..|PeriodTo=..
    full  = core[|Service_code=..][|return_url=..]
    sent  = encrypt(full + "|checkSum=" + md5(core))

    Head2/Amount2 sit before Ddo and appear only when the secondary head
    carries a positive amount.  The checksum never covers Service_code or
    return_url; the gateway computes it the same way.

Invariants enforced:
    - Amounts are whole rupees; fractional input is rounded half-up before
      it reaches the string.
    - Cipher is AES-128-CBC with PKCS7 padding, IV equal to the key, text
      encoded as ASCII and transported as base64.
    - Checksum comparison is case-insensitive and constant-time.

Failure modes:
    - MalformedPayloadError when a payload cannot be decrypted or carries no
      checksum marker.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from homestay_kernel.exceptions import MalformedPayloadError
from homestay_kernel.logging_config import get_logger

logger = get_logger("engines.gateway_codec")

KEY_SIZE = 16

_CHECKSUM_MARKER = re.compile(r"\|checksum=([0-9a-fA-F]+)", re.IGNORECASE)


def to_whole_rupees(value: int | float | Decimal | str) -> int:
    """Round an amount half-up to an integer number of rupees."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Checksum
# =============================================================================


def checksum(data: str) -> str:
    """Lowercase hex MD5 over the UTF-8 bytes of ``data``."""
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def verify_checksum(data: str, received: str) -> bool:
    expected = checksum(data)
    return hmac.compare_digest(expected.lower(), (received or "").strip().lower())


# =============================================================================
# Cipher
# =============================================================================


class GatewayCipher:
    """
    Symmetric cipher shared with the treasury.

    Only the first 16 bytes of the provisioned key are used; a shorter key
    is zero-padded.  The IV is the key itself.
    """

    def __init__(self, key: bytes):
        if not key:
            raise ValueError("Gateway key must not be empty")
        self._key = key[:KEY_SIZE].ljust(KEY_SIZE, b"\x00")

    def _cipher(self):
        return AES.new(self._key, AES.MODE_CBC, iv=self._key)

    def encrypt(self, text: str) -> str:
        raw = text.encode("ascii", errors="replace")
        return base64.b64encode(self._cipher().encrypt(pad(raw, AES.block_size))).decode("ascii")

    def decrypt(self, payload: str) -> str:
        try:
            data = base64.b64decode(payload, validate=False)
            raw = unpad(self._cipher().decrypt(data), AES.block_size)
        except (ValueError, binascii.Error) as exc:
            raise MalformedPayloadError("payload could not be decrypted") from exc
        return raw.decode("ascii", errors="replace")


# =============================================================================
# Request strings
# =============================================================================


@dataclass(frozen=True)
class GatewayRequest:
    dept_id: str
    dept_ref_no: str
    total_amount: int
    tender_by: str
    app_ref_no: str
    head1: str
    amount1: int
    ddo: str
    period_from: str
    period_to: str
    head2: str | None = None
    amount2: int | None = None
    service_code: str | None = None
    return_url: str | None = None


@dataclass(frozen=True)
class EncodedRequest:
    core_string: str
    full_string: str
    checksum: str

    @property
    def signed_string(self) -> str:
        """The plaintext that gets encrypted."""
        return f"{self.full_string}|checkSum={self.checksum}"


def build_core_string(request: GatewayRequest) -> str:
    parts = [
        f"DeptID={request.dept_id}",
        f"DeptRefNo={request.dept_ref_no}",
        f"TotalAmount={to_whole_rupees(request.total_amount)}",
        f"TenderBy={request.tender_by}",
        f"AppRefNo={request.app_ref_no}",
        f"Head1={request.head1}",
        f"Amount1={to_whole_rupees(request.amount1)}",
    ]
    if request.head2 and request.amount2 is not None and to_whole_rupees(request.amount2) > 0:
        parts.append(f"Head2={request.head2}")
        parts.append(f"Amount2={to_whole_rupees(request.amount2)}")
    parts.append(f"Ddo={request.ddo}")
    parts.append(f"PeriodFrom={request.period_from}")
    parts.append(f"PeriodTo={request.period_to}")
    return "|".join(parts)


def encode_request(request: GatewayRequest) -> EncodedRequest:
    core = build_core_string(request)
    full = core
    if request.service_code:
        full += f"|Service_code={request.service_code}"
    if request.return_url:
        full += f"|return_url={request.return_url}"
    return EncodedRequest(core_string=core, full_string=full, checksum=checksum(core))


def build_verification_string(app_ref_no: str, service_code: str, merchant_code: str) -> str:
    """Signed plaintext for the double-verification call."""
    data = f"AppRefNo={app_ref_no}|Service_code={service_code}|merchant_code={merchant_code}"
    return f"{data}|checkSum={checksum(data)}"


# =============================================================================
# Responses
# =============================================================================


@dataclass(frozen=True)
class GatewayResponse:
    ech_txn_id: str = ""
    bank_cin: str = ""
    bank: str = ""
    status: str = ""
    status_cd: str = ""
    app_ref_no: str = ""
    amount: str = ""
    payment_date: str = ""
    dept_ref_no: str = ""
    bank_name: str = ""
    checksum: str = ""

    @property
    def is_success(self) -> bool:
        return self.status_cd == "1"


def parse_fields(text: str, *, lowercase_keys: bool = True) -> dict[str, str]:
    """Split ``key=value|key=value``; values may themselves contain ``=``."""
    fields: dict[str, str] = {}
    for part in text.split("|"):
        key, sep, value = part.partition("=")
        key = key.strip()
        if not key or not sep:
            continue
        fields[key.lower() if lowercase_keys else key] = value
    return fields


def parse_response(text: str) -> GatewayResponse:
    data = parse_fields(text)
    return GatewayResponse(
        ech_txn_id=data.get("echtxnid", ""),
        bank_cin=data.get("bankcin", ""),
        bank=data.get("bank", ""),
        status=data.get("status", ""),
        status_cd=data.get("statuscd", ""),
        app_ref_no=data.get("apprefno", ""),
        amount=data.get("amount", ""),
        payment_date=data.get("payment_date", ""),
        dept_ref_no=data.get("deptrefno", ""),
        bank_name=data.get("bankname", ""),
        checksum=data.get("checksum", ""),
    )


def split_signed_payload(decrypted: str) -> tuple[str, str]:
    """
    Separate a decrypted callback into (signed data, received checksum).

    Raises:
        MalformedPayloadError: no ``|checksum=`` marker is present.
    """
    match = _CHECKSUM_MARKER.search(decrypted)
    if match is None:
        raise MalformedPayloadError("checksum marker missing")
    return decrypted[: match.start()], match.group(1)


def decode_callback(cipher: GatewayCipher, encdata: str) -> tuple[GatewayResponse, bool, str]:
    """
    Decrypt and authenticate a callback payload.

    Returns:
        ``(response, checksum_valid, received_checksum)``.  The caller decides
        how to fail; nothing here trusts the payload.
    """
    decrypted = cipher.decrypt(encdata)
    signed, received = split_signed_payload(decrypted)
    response = parse_response(decrypted)
    return response, verify_checksum(signed, received), received
