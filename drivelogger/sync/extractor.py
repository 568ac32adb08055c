"""
Transcript extraction for Drive Logger.

Turns a page's HTML into ordered message records and renders them as a
Markdown document. Extraction is best-effort: strategies are tried in
order and the first that finds messages wins.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from ..constants import DEFAULT_TITLE, NO_CONVERSATION_ID

NBSP = "\u00a0"
_CONVERSATION_PATTERNS = [
    re.compile(r"/c/([a-z0-9-]+)", re.IGNORECASE),
    re.compile(r"/g/([a-z0-9-]+)", re.IGNORECASE),
]
_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]+')
_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden|opacity\s*:\s*0(\.0*)?\s*(;|$))", re.IGNORECASE)


@dataclass
class MessageRecord:
    """One extracted chat message."""
    id: str
    role: str
    text: str


@dataclass
class Snapshot:
    """Result of one scan."""
    conversation_id: str
    title: str
    messages: list[MessageRecord]
    generated_at: datetime
    document: str = field(repr=False)
    # Document without the generation timestamp; what change detection hashes
    body: str = field(repr=False)


def conversation_id_from_url(url: str) -> str:
    """Extract the conversation ID from /c/<id> or /g/<id> paths."""
    try:
        path = urlparse(url).path or ""
    except ValueError:
        return NO_CONVERSATION_ID
    for pattern in _CONVERSATION_PATTERNS:
        match = pattern.search(path)
        if match:
            return match.group(1)
    return NO_CONVERSATION_ID


def _clean(text: str) -> str:
    return text.replace(NBSP, " ").strip()


def extract_title(soup: BeautifulSoup) -> str:
    node = soup.select_one("h1, header h1, [data-testid='conversation-name']")
    text = node.get_text() if node else ""
    if not _clean(text) and soup.title and soup.title.string:
        text = soup.title.string
    return _clean(text or "") or DEFAULT_TITLE


def is_visible(el: Tag) -> bool:
    """Inline-style visibility check; computed styles aren't available."""
    if el.get("aria-hidden") == "true" or el.has_attr("hidden"):
        return False
    style = el.get("style") or ""
    return not _HIDDEN_STYLE.search(style)


def message_text(el: Tag) -> str:
    node = el.select_one("[data-message-content]") or el.select_one("[data-message-text]") or el
    return _clean(node.get_text("\n", strip=True))


class ExtractionStrategy:
    """Selects candidate message containers from a page."""

    name = "base"

    def candidates(self, soup: BeautifulSoup) -> list[Tag]:
        raise NotImplementedError

    def role_hint(self, el: Tag) -> Optional[str]:
        return None

    def extract(self, soup: BeautifulSoup) -> list[MessageRecord]:
        """Collect visible, non-empty, de-duplicated messages in page order."""
        records: list[MessageRecord] = []
        seen_ids: set[str] = set()
        seen_hashes: set[str] = set()

        for el in self.candidates(soup):
            if not is_visible(el):
                continue
            role_node = el if el.has_attr("data-message-author-role") else el.select_one("[data-message-author-role]")
            role = (role_node.get("data-message-author-role") if role_node else None) or self.role_hint(el) or "unknown"
            text = message_text(el)
            if not text:
                continue
            el_id = el.get("data-message-id") or el.get("id")
            if el_id:
                if el_id in seen_ids:
                    continue
                seen_ids.add(el_id)
            else:
                key = f"{role}|{text}"
                if key in seen_hashes:
                    continue
                seen_hashes.add(key)
            records.append(MessageRecord(id=el_id or f"no-id-{len(records)}", role=role, text=text))

        return records


class MessageIdStrategy(ExtractionStrategy):
    name = "message-id"

    def candidates(self, soup):
        return soup.select("[data-message-id]")


class ConversationTurnStrategy(ExtractionStrategy):
    name = "conversation-turn"

    def candidates(self, soup):
        return soup.select("[data-testid^='conversation-turn-']")


class FeedListItemStrategy(ExtractionStrategy):
    name = "feed-list-item"

    def candidates(self, soup):
        feed = soup.select_one('[role="feed"], [data-testid="conversation"]')
        if feed is None:
            return []
        return feed.select('[role="listitem"]')


DEFAULT_STRATEGIES: list[ExtractionStrategy] = [
    MessageIdStrategy(),
    ConversationTurnStrategy(),
    FeedListItemStrategy(),
]


def extract_messages(soup: BeautifulSoup, strategies: Optional[list[ExtractionStrategy]] = None) -> list[MessageRecord]:
    """Run strategies in priority order; the first with results wins."""
    for strategy in strategies or DEFAULT_STRATEGIES:
        records = strategy.extract(soup)
        if records:
            return records
    return []


def render_markdown(messages: list[MessageRecord], title: str, generated_at: Optional[datetime] = None) -> str:
    """
    Render messages as the Markdown transcript.

    With generated_at=None the snapshot timestamp line is left out.
    """
    header = f"# {title}\n"
    if generated_at is not None:
        stamp = generated_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        header += f"_Snapshot @ {stamp}_\n"
    body = "".join(f"\n---\n**{(m.role or 'unknown').upper()}**\n\n{m.text}\n" for m in messages)
    return header + body + "\n"


def file_name_for(conversation_id: str, title: str, today: Optional[datetime] = None) -> str:
    """
    Stable Drive file name: by conversation ID, else dated title.

    The dated name only renames the file; the host still binds every
    id-less page to the single "no-id" binding (see ConversationBindings).
    """
    if conversation_id and conversation_id != NO_CONVERSATION_ID:
        return f"ChatGPT — {conversation_id}.md"
    today = today or datetime.now()
    safe_title = _UNSAFE_FILENAME_CHARS.sub("-", title or DEFAULT_TITLE)[:80]
    return f"{today:%Y-%m-%d} — {safe_title}.md"


def take_snapshot(
    html: str,
    url: str,
    now: Optional[datetime] = None,
    strategies: Optional[list[ExtractionStrategy]] = None,
) -> Optional[Snapshot]:
    """
    Extract a snapshot from page HTML.

    Returns:
        Snapshot, or None when the page has no messages yet
    """
    soup = BeautifulSoup(html, "html.parser")
    messages = extract_messages(soup, strategies)
    if not messages:
        return None
    title = extract_title(soup)
    now = now or datetime.now(timezone.utc)
    return Snapshot(
        conversation_id=conversation_id_from_url(url),
        title=title,
        messages=messages,
        generated_at=now,
        document=render_markdown(messages, title, now),
        body=render_markdown(messages, title),
    )
