# --- Global log sanitizer to stop HTML body spam --------------------------------
import logging, re

_HTML_SIG_RE = re.compile(r'(?is)<!DOCTYPE html|<html[^>]*>')
_TITLE_RE    = re.compile(r'(?is)<title[^>]*>(.*?)</title>')
_TAG_RE      = re.compile(r'(?is)<[^>]+>')
_SCRIPT_RE   = re.compile(r'(?is)<(script|style)[^>]*>.*?</\1>')

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"


def _strip_tags(s: str) -> str:
    s = _SCRIPT_RE.sub('', s)
    s = _TAG_RE.sub(' ', s)
    return re.sub(r'\s+', ' ', s).strip()


def summarize_body(s: str, limit: int = 200) -> str:
    """Short, log-friendly preview of an HTTP error body (HTML or otherwise)."""
    if not s:
        return ""
    if _HTML_SIG_RE.search(s):
        title = None
        m = _TITLE_RE.search(s)
        if m:
            title = _strip_tags(m.group(1))
        preview = title or _strip_tags(s)[:limit]
        return f"{preview} [HTML {len(s)} chars trimmed]"
    if len(s) > limit:
        return f"{s[:limit]} [{len(s)} chars trimmed]"
    return s


class HtmlTrimFilter(logging.Filter):
    """If a log message contains a large HTML blob, replace it with a short summary."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        if isinstance(msg, str) and len(msg) > 200 and _HTML_SIG_RE.search(msg):
            record.msg = summarize_body(msg)
            record.args = ()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # install once on common loggers (root + uvicorn family)
    for name in ("", "uvicorn", "uvicorn.error"):
        lg = logging.getLogger(name)
        if not any(isinstance(f, HtmlTrimFilter) for f in lg.filters):
            lg.addFilter(HtmlTrimFilter())
