"""
Classify an agent reply and pull renderable structure out of it.

Canonical wire shape (what new code emits):

    {"kind": "text" | "qr" | "error", "text": str,
     "qrCode"?: str, "qrMessage"?: str, "transactionHash"?: str}

Everything else accepted here is legacy input tolerance: bare {qrCode, message}
objects, {response, qrCode, qrMessage}, JSON that was encoded twice, a JSON QR
line appended after markdown, and markdown images with base64 data URLs.

parse_hybrid_payload never raises. Anything it cannot make sense of comes
back as plain text.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

QR_RESPONSE = "qr_response"
JSON_MESSAGE = "json_message"
MARKDOWN_QR = "markdown_qr"
TEXT = "text"

WIRE_KINDS = ("text", "qr", "error")

MARKDOWN_QR_RE = re.compile(
    r"!\[[^\]]*\]\((data:image/(?:svg\+xml|png);base64,[A-Za-z0-9+/=\s]+)\)"
)
TOKEN_RE = re.compile(
    r"(?P<url>https?://[^\s<>\"'`]+)"
    r"|(?P<tx_hash>(?<![A-Za-z0-9])0x[a-fA-F0-9]{64}(?![A-Za-z0-9]))"
    r"|(?P<address>(?<![A-Za-z0-9])0x[a-fA-F0-9]{40}(?![A-Za-z0-9]))"
    r"|\*\*(?P<strong>[^*\n]+?)\*\*"
    r"|\*(?P<bold>[^*\n]+?)\*"
)
URL_TRAILING = ").,;:!?]"


@dataclass
class Token:
    kind: str  # text | url | address | tx_hash | bold
    value: str


@dataclass
class ParsedMessage:
    classification: str
    text: str
    qr_code: Optional[str] = None
    qr_message: Optional[str] = None
    transaction_hash: Optional[str] = None
    is_error: bool = False
    tokens: List[Token] = field(default_factory=list)

    @property
    def addresses(self) -> List[str]:
        return [t.value for t in self.tokens if t.kind == "address"]

    @property
    def tx_hashes(self) -> List[str]:
        return [t.value for t in self.tokens if t.kind == "tx_hash"]

    @property
    def urls(self) -> List[str]:
        return [t.value for t in self.tokens if t.kind == "url"]

    def to_wire(self) -> Dict[str, Any]:
        if self.qr_code:
            kind = "qr"
        elif self.is_error:
            kind = "error"
        else:
            kind = "text"
        out: Dict[str, Any] = {"kind": kind, "text": self.text}
        if self.qr_code:
            out["qrCode"] = self.qr_code
            out["qrMessage"] = self.qr_message or ""
        if self.transaction_hash:
            out["transactionHash"] = self.transaction_hash
        return out


def qr_wire(text: str, qr_code: str, qr_message: str, transaction_hash: Optional[str] = None) -> str:
    """
    Serialize a canonical QR reply (encoded exactly once).
    """
    obj = {"kind": "qr", "text": text, "qrCode": qr_code, "qrMessage": qr_message}
    if transaction_hash:
        obj["transactionHash"] = transaction_hash
    return json.dumps(obj)


def _as_data_url(qr: str) -> str:
    qr = qr.strip()
    if qr.startswith("data:"):
        return qr
    return "data:image/png;base64," + qr


def _loads(raw: str) -> Any:
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        return None
    # Legacy: some replies were JSON strings wrapping a JSON string
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except (ValueError, TypeError):
            return None
    return data


def _first_str(*values: Any) -> Optional[str]:
    for v in values:
        if isinstance(v, str) and v:
            return v
    return None


def _from_object(obj: Dict[str, Any]) -> Optional[ParsedMessage]:
    tx_hash = _first_str(obj.get("transactionHash"))
    kind = obj.get("kind")
    if kind in WIRE_KINDS and isinstance(obj.get("text"), str):
        qr = obj.get("qrCode")
        if kind == "qr" and isinstance(qr, str) and qr:
            return ParsedMessage(
                QR_RESPONSE,
                obj["text"],
                qr_code=_as_data_url(qr),
                qr_message=_first_str(obj.get("qrMessage")) or obj["text"],
                transaction_hash=tx_hash,
            )
        return ParsedMessage(
            JSON_MESSAGE,
            obj["text"],
            transaction_hash=tx_hash,
            is_error=kind == "error",
        )

    qr = obj.get("qrCode")
    body = obj.get("response") if isinstance(obj.get("response"), str) else obj.get("message")
    if isinstance(qr, str) and qr and isinstance(body, str):
        qr_message = _first_str(obj.get("qrMessage"), obj.get("message")) or body
        return ParsedMessage(
            QR_RESPONSE,
            body,
            qr_code=_as_data_url(qr),
            qr_message=qr_message,
            transaction_hash=tx_hash,
        )
    if isinstance(obj.get("message"), str):
        return ParsedMessage(JSON_MESSAGE, obj["message"], transaction_hash=tx_hash)
    return None


def _trailing_qr(content: str) -> Optional[ParsedMessage]:
    """
    Markdown followed by a one-line QR object, as produced by deploy replies.
    """
    idx = content.rfind("\n{")
    if idx < 0:
        return None
    data = _loads(content[idx + 1:].strip())
    if not isinstance(data, dict):
        return None
    qr = data.get("qrCode")
    msg = _first_str(data.get("qrMessage"), data.get("message"))
    if not (isinstance(qr, str) and qr and isinstance(msg, str)):
        return None
    return ParsedMessage(
        QR_RESPONSE,
        content[:idx].rstrip(),
        qr_code=_as_data_url(qr),
        qr_message=msg,
        transaction_hash=_first_str(data.get("transactionHash")),
    )


def _markdown_qr(content: str) -> Optional[ParsedMessage]:
    m = MARKDOWN_QR_RE.search(content)
    if not m:
        return None
    data_url = re.sub(r"\s+", "", m.group(1))
    stripped = (content[: m.start()] + content[m.end():]).strip()
    return ParsedMessage(MARKDOWN_QR, stripped, qr_code=data_url, qr_message=stripped)


def tokenize(text: str) -> List[Token]:
    """
    Split display text into plain runs and entities: URLs, tx hashes,
    addresses and *bold* spans.
    """
    tokens: List[Token] = []
    pos = 0
    for m in TOKEN_RE.finditer(text):
        kind = m.lastgroup
        value = m.group(kind)
        start, end = m.start(), m.end()
        if kind == "url":
            trimmed = value.rstrip(URL_TRAILING)
            end -= len(value) - len(trimmed)
            value = trimmed
            if not value:
                continue
        if kind == "strong":
            kind = "bold"
        if start > pos:
            tokens.append(Token("text", text[pos:start]))
        tokens.append(Token(kind, value))
        pos = end
    if pos < len(text):
        tokens.append(Token("text", text[pos:]))
    return tokens


def parse_hybrid_payload(content: Any) -> ParsedMessage:
    if not isinstance(content, str):
        try:
            content = json.dumps(content) if content is not None else ""
        except (TypeError, ValueError):
            content = str(content)

    parsed: Optional[ParsedMessage] = None
    for rule in (_rule_json, _trailing_qr, _markdown_qr):
        try:
            parsed = rule(content)
        except Exception as e:
            logger.debug(f"payload rule {rule.__name__} failed: {e}")
            parsed = None
        if parsed is not None:
            break
    if parsed is None:
        parsed = ParsedMessage(TEXT, content)

    try:
        parsed.tokens = tokenize(parsed.text)
    except Exception as e:
        logger.debug(f"tokenize failed: {e}")
        parsed.tokens = [Token("text", parsed.text)]
    if parsed.transaction_hash is None and parsed.tx_hashes:
        parsed.transaction_hash = parsed.tx_hashes[0]
    return parsed


def _rule_json(content: str) -> Optional[ParsedMessage]:
    data = _loads(content)
    if isinstance(data, dict):
        return _from_object(data)
    return None
