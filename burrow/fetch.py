"""Fetch URL tool: the one tool that talks to the network instead of the sandbox."""

import html
import html.parser
import ipaddress
import json
import re
import socket
import urllib.error
import urllib.parse
import urllib.request

from .results import INVALID_ARGUMENT, NETWORK_ERROR, PARSE_ERROR, ToolResult

MAX_RESPONSE_SIZE = 5 * 1024 * 1024  # 5 MB raw download cap
MAX_OUTPUT_BYTES = 50 * 1024  # 50 KB converted output cap
MAX_REDIRECTS = 10
MAX_TIMEOUT = 120
FORMATS = ("markdown", "text", "html")

HEADERS = {
    "User-Agent": "burrow/0.1 (+https://pypi.org/project/burrow-agent/)",
    "Accept": "application/json,text/markdown,text/html,text/plain,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_TEXTUAL_MIME_TYPES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/xhtml+xml",
        "application/javascript",
        "application/ecmascript",
        "application/rss+xml",
        "application/atom+xml",
    }
)

# Block elements that should produce line breaks in text extraction
_BLOCK_TAGS = frozenset(
    {
        "p",
        "div",
        "br",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "li",
        "tr",
        "blockquote",
        "pre",
        "hr",
        "section",
        "article",
        "header",
        "footer",
        "nav",
        "main",
        "table",
    }
)

# Tags whose content should be skipped entirely
_SKIP_TAGS = frozenset({"script", "style", "noscript", "svg"})


class _RedirectError(Exception):
    def __init__(self, url: str, code: int):
        self.url = url
        self.code = code


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        raise _RedirectError(newurl, code)


class _TextExtractor(html.parser.HTMLParser):
    """Extract readable text from HTML, skipping script/style/svg/noscript."""

    def __init__(self):
        super().__init__()
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs):
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS and self._skip_depth == 0:
            self._parts.append("\n")

    def handle_endtag(self, tag: str):
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in _BLOCK_TAGS and self._skip_depth == 0:
            self._parts.append("\n")

    def handle_data(self, data: str):
        if self._skip_depth == 0:
            self._parts.append(data)

    def handle_entityref(self, name: str):
        if self._skip_depth == 0:
            self._parts.append(html.unescape(f"&{name};"))

    def handle_charref(self, name: str):
        if self._skip_depth == 0:
            self._parts.append(html.unescape(f"&#{name};"))

    def get_text(self) -> str:
        text = "".join(self._parts)
        text = re.sub(r"[^\S\n]+", " ", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()


def _html_to_text(body: str) -> str:
    parser = _TextExtractor()
    parser.feed(body)
    return parser.get_text()


def _check_url_safety(url: str) -> ToolResult | None:
    """Return a failure if the URL has a bad scheme or targets a private address."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return ToolResult.failure(
            INVALID_ARGUMENT,
            f"url scheme {parsed.scheme!r} is not allowed, must be http or https",
        )
    hostname = parsed.hostname
    if not hostname:
        return ToolResult.failure(INVALID_ARGUMENT, "could not parse hostname from url")
    try:
        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        return ToolResult.failure(
            NETWORK_ERROR, f"could not resolve hostname {hostname!r}: {e}"
        )
    for _family, _, _, _, sockaddr in infos:
        addr = ipaddress.ip_address(sockaddr[0])
        if addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved:
            return ToolResult.failure(
                NETWORK_ERROR,
                f"url resolves to private/internal address ({addr}), blocked for security",
            )
    return None


def _decode_response(data: bytes, content_type: str | None) -> str:
    """Decode response bytes using the Content-Type charset, then UTF-8, then latin-1."""
    charset = None
    if content_type:
        for part in content_type.split(";"):
            part = part.strip()
            if part.lower().startswith("charset="):
                charset = part.split("=", 1)[1].strip().strip("\"'")
                break

    for encoding in [charset, "utf-8"]:
        if encoding is None:
            continue
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    # latin-1 maps every byte
    return data.decode("latin-1")


def _truncate(text: str) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= MAX_OUTPUT_BYTES:
        return text
    head = encoded[:MAX_OUTPUT_BYTES].decode("utf-8", errors="ignore")
    return (
        head
        + f"\n[content truncated at {MAX_OUTPUT_BYTES} bytes, total was {len(encoded)} bytes]"
    )


def _open(url: str, timeout: int):
    """Follow redirects by hand so every hop passes the safety check.

    Returns (response, final_url) or (ToolResult, url) on failure.
    """
    current_url = url
    opener = urllib.request.build_opener(_NoRedirectHandler)

    for _ in range(MAX_REDIRECTS + 1):
        failure = _check_url_safety(current_url)
        if failure:
            return failure, current_url

        host = urllib.parse.urlparse(current_url).hostname
        req = urllib.request.Request(current_url, headers=HEADERS)
        try:
            return opener.open(req, timeout=timeout), current_url
        except _RedirectError as r:
            current_url = urllib.parse.urljoin(current_url, r.url)
        except urllib.error.HTTPError as e:
            return ToolResult.failure(NETWORK_ERROR, f"HTTP {e.code}: {e.reason}"), current_url
        except urllib.error.URLError as e:
            reason = str(e.reason)
            if "timed out" in reason.lower():
                return (
                    ToolResult.failure(
                        NETWORK_ERROR, f"request timed out after {timeout} seconds"
                    ),
                    current_url,
                )
            return (
                ToolResult.failure(NETWORK_ERROR, f"could not connect to {host}: {reason}"),
                current_url,
            )
        except TimeoutError:
            return (
                ToolResult.failure(NETWORK_ERROR, f"request timed out after {timeout} seconds"),
                current_url,
            )
        except OSError as e:
            return (
                ToolResult.failure(NETWORK_ERROR, f"could not connect to {host}: {e}"),
                current_url,
            )

    return (
        ToolResult.failure(NETWORK_ERROR, f"too many redirects (limit is {MAX_REDIRECTS})"),
        current_url,
    )


def fetch_url(url: str, format: str = "markdown", timeout: int = 30) -> ToolResult:
    """Fetch a URL and return its decoded payload.

    JSON bodies are decoded into ``data["json"]``; textual bodies land in
    ``data["content"]``, with HTML converted to markdown or plain text
    depending on ``format``.
    """
    if not isinstance(url, str) or not url.strip():
        return ToolResult.failure(INVALID_ARGUMENT, "url must be a non-empty string")
    if format not in FORMATS:
        return ToolResult.failure(
            INVALID_ARGUMENT,
            f"invalid format {format!r}, must be 'markdown', 'text', or 'html'",
        )
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        return ToolResult.failure(
            INVALID_ARGUMENT, f"timeout must be a number, got {type(timeout).__name__}"
        )
    timeout = max(1, min(int(timeout), MAX_TIMEOUT))

    resp, final_url = _open(url, timeout)
    if isinstance(resp, ToolResult):
        return resp

    try:
        content_type = resp.headers.get("Content-Type", "") or ""
        mime = content_type.split(";")[0].strip().lower()
        textual = (
            mime.startswith("text/")
            or mime in _TEXTUAL_MIME_TYPES
            or mime.endswith("+json")
        )
        if mime and not textual:
            return ToolResult.failure(
                PARSE_ERROR, f"binary content (content-type: {mime}), cannot decode as text"
            )

        try:
            data = resp.read(MAX_RESPONSE_SIZE + 1)
        except TimeoutError:
            return ToolResult.failure(
                NETWORK_ERROR, f"request timed out after {timeout} seconds"
            )
        except OSError as e:
            return ToolResult.failure(NETWORK_ERROR, f"failed to read response: {e}")
    finally:
        resp.close()

    if len(data) > MAX_RESPONSE_SIZE:
        return ToolResult.failure(
            NETWORK_ERROR, f"response too large ({len(data)} bytes, limit is 5MB)"
        )
    if b"\x00" in data[:8192]:
        return ToolResult.failure(
            PARSE_ERROR, "binary content detected (null bytes found), cannot decode as text"
        )

    body = _decode_response(data, content_type)
    payload: dict = {"url": final_url, "content_type": mime or "unknown"}

    if mime == "application/json" or mime.endswith("+json"):
        try:
            payload["json"] = json.loads(body)
        except json.JSONDecodeError as e:
            return ToolResult.failure(PARSE_ERROR, f"failed to parse JSON response: {e}")
        return ToolResult.success(payload)

    is_html = mime in ("text/html", "application/xhtml+xml")
    if not is_html or format == "html":
        output = body
    elif format == "text":
        output = _html_to_text(body)
    else:
        try:
            from html_to_markdown import convert

            converted = convert(body)
            # html-to-markdown 3.x wraps the markdown in a ConversionResult
            output = converted if isinstance(converted, str) else converted.content
        except Exception as e:
            return ToolResult.failure(PARSE_ERROR, f"failed to convert HTML to markdown: {e}")

    payload["content"] = _truncate(output)
    return ToolResult.success(payload)
