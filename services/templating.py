"""
Turns a campaign pitch (plain text or rich-text HTML) into email-safe HTML.

Placeholders use double braces and are case-insensitive:
    {{ firstName }}  {{ lastName }}  {{ companyName }}  {{ clientName }}
Unknown placeholders are left as-is; known ones with no value become "".
Values are HTML-escaped: they come from spreadsheets and prospect lists,
not from whoever wrote the pitch.

Plain text input gets light formatting:
- blank line        → <br>
- "• x" / "- x" / "* x" / "+ x" → bullet list item
- any other line    → <p>
HTML input (from the rich-text editor) is stripped of style/script blocks,
class attributes and font/span tags that mail clients render badly.

Either way the result is wrapped in a single styled <div>.
"""

import hashlib
import hmac
import html as html_lib
import re
from typing import Mapping
from urllib.parse import quote

PLACEHOLDERS = ("firstName", "lastName", "companyName", "clientName")

CONTAINER_STYLE = "font-family: Arial, Helvetica, sans-serif; font-size: 14px; line-height: 1.6; color: #333;"

_STRIP_PATTERNS = [
    re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r'class="[^"]*"', re.IGNORECASE),
    re.compile(r"</?font[^>]*>", re.IGNORECASE),
    re.compile(r"</?span[^>]*>", re.IGNORECASE),
]
_BULLET_RE = re.compile(r"^[•\-*+]\s+(.+)$")
_TAG_RE = re.compile(r"<[^>]*>")
_LINK_RE = re.compile(r'<a\s+([^>]*?)href="([^"]*?)"([^>]*?)>', re.IGNORECASE)


def looks_like_html(text: str) -> bool:
    return "<" in text and ">" in text


def personalize(template: str, variables: Mapping[str, str]) -> str:
    out = template or ""
    for name in PLACEHOLDERS:
        pattern = re.compile(r"\{\{\s*" + name + r"\s*\}\}", re.IGNORECASE)
        value = html_lib.escape(variables.get(name) or "")
        out = pattern.sub(lambda _m: value, out)
    return out


def _plain_text_to_html(text: str) -> str:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    parts: list[str] = []
    in_list = False
    for raw in lines:
        line = raw.strip()
        if not line:
            if in_list:
                parts.append("</ul>")
                in_list = False
            parts.append("<br>")
            continue

        bullet = _BULLET_RE.match(line)
        if bullet:
            if not in_list:
                parts.append('<ul style="margin: 8px 0; padding-left: 20px;">')
                in_list = True
            parts.append(f'<li style="margin: 4px 0;">{bullet.group(1)}</li>')
        else:
            if in_list:
                parts.append("</ul>")
                in_list = False
            parts.append(f'<p style="margin: 8px 0;">{line}</p>')

    if in_list:
        parts.append("</ul>")
    return "".join(parts)


def render_html(template: str, variables: Mapping[str, str] | None = None) -> str:
    # Decide on the template alone; a value can't switch a plain-text pitch to HTML
    is_html = looks_like_html(template or "")
    body = personalize(template, variables or {})
    if is_html:
        for pattern in _STRIP_PATTERNS:
            body = pattern.sub("", body)
    else:
        body = _plain_text_to_html(body)
    return f'<div style="{CONTAINER_STYLE}">{body}</div>'


def html_to_text(html: str) -> str:
    return html_lib.unescape(_TAG_RE.sub("", html))


def tracking_url(base_url: str, campaign_id: str, email: str, action: str) -> str:
    return f"{base_url.rstrip('/')}/track/{campaign_id}?email={quote(email, safe='')}&action={action}"


def sign_redirect(secret: str, campaign_id: str, email: str, url: str) -> str:
    """HMAC-SHA256 over campaign, recipient and target; the tracker only follows signed links."""
    message = f"{campaign_id}|{email}|{url}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_redirect(secret: str, campaign_id: str, email: str, url: str, sig: str) -> bool:
    expected = sign_redirect(secret, campaign_id, email, url)
    return hmac.compare_digest(expected.encode(), sig.encode())


def add_tracking(html: str, base_url: str, campaign_id: str, email: str, secret: str) -> str:
    """Rewrite links through the click tracker and append the open pixel."""

    def rewrite(match: re.Match) -> str:
        before, url, after = match.groups()
        # href values are attribute-encoded; sign the URL the browser will actually follow
        target = html_lib.unescape(url)
        tracked = (
            f"{tracking_url(base_url, campaign_id, email, 'click')}"
            f"&redirect={quote(target, safe='')}"
            f"&sig={sign_redirect(secret, campaign_id, email, target)}"
        )
        return f'<a {before}href="{tracked}"{after}>'

    pixel = (
        f'<img src="{tracking_url(base_url, campaign_id, email, "open")}" '
        'width="1" height="1" style="display:none;" />'
    )
    return _LINK_RE.sub(rewrite, html) + pixel
