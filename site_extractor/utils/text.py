"""
Text and URL normalization helpers.

Pure functions shared by every extractor: whitespace sanitizing, URL
resolution, price and currency normalization, stock status wording and
fallback text synthesis.
"""
import re
from typing import Any, Optional, Tuple
from urllib.parse import urljoin, urlparse


PLACEHOLDER_TITLE = "Untitled Page"

IN_STOCK_LABEL = "Mevcut"
OUT_OF_STOCK_LABEL = "Tükendi"

# Checked before the in-stock words: "stokta yok" must not match "var".
OUT_OF_STOCK_TERMS = (
    "outofstock", "out of stock", "soldout", "sold out", "discontinued",
    "unavailable", "not available",
    "stokta yok", "tükendi", "tukendi", "yok",
)
IN_STOCK_TERMS = (
    "instock", "in stock", "onbackorder", "preorder", "pre-order",
    "limitedavailability", "stokta var", "mevcut", "available", "var",
)

# Longer keys first so substring matching prefers "a$" over "$".
CURRENCY_CODES = {
    "a$": "AUD",
    "c$": "CAD",
    "us$": "USD",
    "₺": "TRY",
    "tl": "TRY",
    "try": "TRY",
    "lira": "TRY",
    "$": "USD",
    "usd": "USD",
    "€": "EUR",
    "eur": "EUR",
    "euro": "EUR",
    "£": "GBP",
    "gbp": "GBP",
    "¥": "JPY",
    "jpy": "JPY",
    "₹": "INR",
    "inr": "INR",
    "₽": "RUB",
    "rub": "RUB",
    "₴": "UAH",
    "zł": "PLN",
    "kr": "SEK",
    "chf": "CHF",
}

_WHITESPACE = re.compile(r"\s+")
_THOUSANDS_DOT = re.compile(r"\.(?=\d{3}(?:,|$))")
_PRICE_PARTS = re.compile(r"(?P<prefix>[^\d.,\s-]*)\s*(?P<number>\d[\d.,\s]*)\s*(?P<suffix>[^\d.,\s]*)")
_DECIMAL = re.compile(r"^\d+(?:\.\d+)?$")
_CURRENCY_SYMBOL_CHARS = re.compile(r"[$€₺£¥₹₽₴]")


def sanitize_text(value: Any) -> Optional[str]:
    """Collapse whitespace and trim; empty or non-string input becomes None."""
    if not isinstance(value, str):
        return None
    cleaned = _WHITESPACE.sub(" ", value.replace(" ", " ")).strip()
    return cleaned or None


def resolve_url(raw: Optional[str], base: Optional[str]) -> Optional[str]:
    """Resolve a possibly relative URL against a base. Malformed input yields None."""
    if not raw or not isinstance(raw, str):
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        if raw.startswith("//"):
            scheme = urlparse(base).scheme if base else ""
            return f"{scheme or 'https'}:{raw}"
        resolved = urljoin(base or "", raw)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return resolved


def hostname_of(url: Optional[str]) -> Optional[str]:
    """Return the lowercase hostname of a URL, or None."""
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def map_currency_symbol_to_code(symbol: Optional[str]) -> Optional[str]:
    """
    Map a currency symbol or suffix to an ISO-4217 code.

    Exact lookup on the trimmed lowercase symbol first, then substring
    containment, then a bare three-letter code is accepted as-is.
    """
    cleaned = sanitize_text(symbol)
    if not cleaned:
        return None
    key = cleaned.lower().rstrip(".")
    if key in CURRENCY_CODES:
        return CURRENCY_CODES[key]
    for candidate in sorted(CURRENCY_CODES, key=len, reverse=True):
        if len(candidate) > 1 and candidate in key:
            return CURRENCY_CODES[candidate]
    for candidate, code in CURRENCY_CODES.items():
        if len(candidate) == 1 and candidate in key:
            return code
    if re.fullmatch(r"[A-Za-z]{3}", cleaned):
        return cleaned.upper()
    return None


def normalize_number(raw: str) -> Optional[str]:
    """Normalize thousands/decimal separators to a plain decimal string."""
    number = re.sub(r"\s", "", raw).strip(".,")
    if not number:
        return None
    if "," in number and "." in number and number.rfind(".") > number.rfind(","):
        # 1,234.56
        number = number.replace(",", "")
    else:
        number = _THOUSANDS_DOT.sub("", number)
        number = number.replace(",", ".")
    if number.count(".") > 1:
        head, _, tail = number.rpartition(".")
        number = head.replace(".", "") + "." + tail
    return number if _DECIMAL.match(number) else None


def normalize_price(raw: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a raw price into (decimal string, currency symbol).

    "1.234,56 ₺" -> ("1234.56", "₺"); "$19.99" -> ("19.99", "$").
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw), None
    text = sanitize_text(raw)
    if not text:
        return None, None
    match = _PRICE_PARTS.search(text)
    if not match:
        return None, None
    price = normalize_number(match.group("number"))
    prefix = _currency_token(match.group("prefix"))
    suffix = _currency_token(match.group("suffix"))
    symbol = prefix
    if suffix and (not prefix or _CURRENCY_SYMBOL_CHARS.search(suffix)):
        symbol = suffix
    return price, symbol


def _currency_token(token: Optional[str]) -> Optional[str]:
    """Keep a token next to the number only when it reads as a currency ("Price", "from" do not)."""
    if not token:
        return None
    token = token.rstrip(":")
    if (
        _CURRENCY_SYMBOL_CHARS.search(token)
        or token.lower().rstrip(".") in CURRENCY_CODES
        or re.fullmatch(r"[A-Z]{3}", token)
    ):
        return token
    return None


def normalize_stock_status(raw: Any) -> Optional[str]:
    """Map stock wording (Turkish, English, schema.org URIs) to a fixed label."""
    text = sanitize_text(raw)
    if not text:
        return None
    lowered = text.lower()
    words = set(re.findall(r"\w+", lowered))
    for term in OUT_OF_STOCK_TERMS:
        if (" " in term or len(term) > 3) and term in lowered or term in words:
            return OUT_OF_STOCK_LABEL
    for term in IN_STOCK_TERMS:
        if (" " in term or len(term) > 3) and term in lowered or term in words:
            return IN_STOCK_LABEL
    return text


def placeholder_title(url: Optional[str]) -> str:
    """Title derived from the last URL path segment, used when nothing better exists."""
    try:
        path = urlparse(url or "").path
    except ValueError:
        path = ""
    segment = [part for part in path.split("/") if part]
    if segment:
        text = sanitize_text(re.sub(r"[-_]+", " ", segment[-1]))
        if text:
            return text
    return PLACEHOLDER_TITLE


def truncate_at_word(text: str, limit: int, soft_limit: int) -> str:
    """
    Cut text to `limit` characters; when the cut exceeds `soft_limit`, back
    off to the last space. An ellipsis marks text that was shortened.
    """
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if len(cut) > soft_limit and " " in cut:
        cut = cut[:cut.rfind(" ")]
    return cut.rstrip() + "..."


def is_placeholder_value(value: Any) -> bool:
    """True for None, blank strings, the literal "null" and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped.lower() == "null"
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
