import logging
import re

from .config import LOG_LEVEL

# 64-hex private keys/secrets (tx hashes share the shape and are redacted only
# when labelled as a key), bearer tokens and sk- style API keys
SECRET_PATTERNS = [
    re.compile(r"(?i)((?:private[_ ]?key|wallet_key|secret)\W{0,3})(0x)?[a-f0-9]{64}"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{16,}"),
    re.compile(r"()sk-[A-Za-z0-9_\-]{16,}"),
]


def redact_secrets(text: str) -> str:
    for rx in SECRET_PATTERNS:
        text = rx.sub(lambda m: m.group(1) + "[REDACTED]", text)
    return text


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if isinstance(record.args, dict):
            record.args = {k: redact_secrets(str(v)) for k, v in record.args.items()}
        elif record.args:
            record.args = tuple(redact_secrets(str(arg)) for arg in record.args)
        return True


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    if not any(isinstance(f, RedactionFilter) for f in root.filters):
        root.addFilter(RedactionFilter())
    # Root filters do not run for records from child loggers; attach to handlers too
    for handler in root.handlers:
        if not any(isinstance(f, RedactionFilter) for f in handler.filters):
            handler.addFilter(RedactionFilter())
