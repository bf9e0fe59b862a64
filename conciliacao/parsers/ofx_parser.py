# conciliacao/parsers/ofx_parser.py
"""
OFX statement parser.

Reads account metadata, the statement period and the STMTTRN list out of
OFX 1.x (SGML) and 2.x (XML) bank exports. Malformed input never raises:
problems are reported in OfxParseResult.errors next to whatever could be read.
"""
import re
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from conciliacao.constants import OFX_DEFAULT_TYPE_CODE, OFX_HASH_KEY_PREFIX
from conciliacao.schemas.ofx_schemas import OfxParseResult, OfxTransaction

logger = logging.getLogger(__name__)

ERROR_BLOCK_NOT_FOUND = "BANKTRANLIST block not found in OFX file"
ERROR_NO_TRANSACTIONS = "No transactions found in OFX file"

_TRANSACTION_SPLIT_RE = re.compile(r"<STMTTRN>", re.IGNORECASE)
_DATE_OFFSET_RE = re.compile(r"\[.*\]")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

# Header tags -> OfxParseResult fields
_HEADER_TAGS = {
    "bank_id": "BANKID",
    "account_id": "ACCTID",
    "account_type": "ACCTTYPE",
    "currency": "CURDEF",
}


def decode_ofx_bytes(raw: bytes) -> str:
    """
    Decodes an uploaded OFX file. UTF-8 first (BOM tolerated); Brazilian banks
    still export cp1252/Latin-1, so anything that is not valid UTF-8 is read as cp1252,
    with unmapped bytes replaced by U+FFFD.
    """
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("OFX content is not valid UTF-8, decoding as cp1252.")
        return raw.decode("cp1252", errors="replace")


def _extract_tag(content: str, tag: str) -> Optional[str]:
    # SGML leaves are unclosed: the value runs to the next tag or the end of the line.
    match = re.search(rf"<{tag}>([^<\r\n]+)", content, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).strip() or None


def _extract_block(content: str, tag: str) -> Optional[str]:
    open_match = re.search(rf"<{tag}>", content, re.IGNORECASE)
    if not open_match:
        return None

    start = open_match.end()
    close_match = re.search(rf"</{tag}>", content[start:], re.IGNORECASE)
    if not close_match:
        # Truncated file: read to the end.
        return content[start:]
    return content[start:start + close_match.start()]


def parse_ofx_date(value: str) -> Optional[str]:
    """
    Normalizes an OFX date (YYYYMMDD, YYYYMMDDHHMMSS, optionally with a
    [offset:TZ] suffix) to YYYY-MM-DD. Only the first 8 characters count.
    Returns None when they are not a real calendar date.
    """
    clean = _DATE_OFFSET_RE.sub("", value).strip()
    head = clean[:8]
    if len(head) < 8 or not head.isdigit():
        return None
    try:
        return date(int(head[0:4]), int(head[4:6]), int(head[6:8])).isoformat()
    except ValueError:
        return None


def _parse_amount(value: str) -> Optional[Decimal]:
    try:
        amount = Decimal(value.strip().replace(",", ".", 1))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _extract_transactions(block: str) -> List[OfxTransaction]:
    transactions = []

    for part in _TRANSACTION_SPLIT_RE.split(block):
        if not part.strip():
            continue

        fitid = _extract_tag(part, "FITID")
        dt_posted = _extract_tag(part, "DTPOSTED")
        trn_amt = _extract_tag(part, "TRNAMT")

        # Candidates without the three required fields are dropped silently.
        if not fitid or not dt_posted or not trn_amt:
            continue

        amount = _parse_amount(trn_amt)
        posted = parse_ofx_date(dt_posted)
        if amount is None or posted is None:
            continue

        transactions.append(
            OfxTransaction(
                fitid=fitid,
                date=posted,
                amount=amount,
                description=_extract_tag(part, "NAME") or "",
                memo=_extract_tag(part, "MEMO"),
                type_code=_extract_tag(part, "TRNTYPE") or OFX_DEFAULT_TYPE_CODE,
                raw_date=dt_posted,
            )
        )

    return transactions


def parse_ofx_content(content: str) -> OfxParseResult:
    """
    Parses the full text of an OFX file.

    Header fields that are missing come back as None. A missing BANKTRANLIST
    block or an empty transaction list is reported in `errors`; repeated FITIDs
    keep their first occurrence and add one warning per dropped copy.
    """
    errors: List[str] = []

    normalized = content.replace("\r\n", "\n").replace("\r", "\n")

    header = {field: _extract_tag(normalized, tag) for field, tag in _HEADER_TAGS.items()}

    for field, tag in (("period_start", "DTSTART"), ("period_end", "DTEND")):
        raw_value = _extract_tag(normalized, tag)
        header[field] = parse_ofx_date(raw_value) if raw_value else None
        if raw_value and header[field] is None:
            errors.append(f"Invalid {tag} date ignored: {raw_value}")

    block = _extract_block(normalized, "BANKTRANLIST")
    if block is None:
        errors.append(ERROR_BLOCK_NOT_FOUND)
        logger.warning("OFX parse aborted: BANKTRANLIST block not found.")
        return OfxParseResult(**header, transactions=[], errors=errors)

    seen_fitids = set()
    transactions = []
    for tx in _extract_transactions(block):
        if tx.fitid in seen_fitids:
            errors.append(f"Duplicate FITID ignored: {tx.fitid}")
            continue
        seen_fitids.add(tx.fitid)
        transactions.append(tx)

    if not transactions:
        errors.append(ERROR_NO_TRANSACTIONS)

    logger.debug(f"OFX parsed: account={header['account_id']}, transactions={len(transactions)}, warnings={len(errors)}")
    return OfxParseResult(**header, transactions=transactions, errors=errors)


# =====================================================================================
# Fallback identity for transactions without FITID
# =====================================================================================

def _format_amount(amount: Any) -> str:
    # Shortest plain decimal form: Decimal("-100.00") -> "-100", Decimal("12.50") -> "12.5"
    text = format(Decimal(str(amount)).normalize(), "f")
    return "0" if text == "-0" else text


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_tx_hash_key(bank_account_id: Any, tx_date: Any, amount: Any, description: str) -> str:
    """
    Derives a stable key for a transaction that has no FITID.

    32-bit rolling hash (h = h * 31 + c over UTF-16 code units, signed int32
    wrap-around) of "account|date|amount|description", rendered in base 36 and
    prefixed with "hash_" so it can never be mistaken for a bank FITID.
    Not collision-free, but the same inputs always give the same key.
    """
    raw = f"{bank_account_id}|{tx_date}|{_format_amount(amount)}|{description or ''}"

    hash_value = 0
    encoded = raw.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        hash_value = (hash_value * 31 + unit) & 0xFFFFFFFF

    if hash_value & 0x80000000:
        hash_value -= 0x100000000

    return f"{OFX_HASH_KEY_PREFIX}{_to_base36(abs(hash_value))}"
