"""
Tests for transcript extraction and rendering.
"""

from datetime import datetime, timezone

from bs4 import BeautifulSoup

from drivelogger.sync.extractor import (
    MessageRecord,
    conversation_id_from_url,
    extract_messages,
    extract_title,
    file_name_for,
    render_markdown,
    take_snapshot,
)

PAGE = """
<html><head><title>ChatGPT</title></head><body>
<h1>Trip&nbsp;planning</h1>
<main>
  <div data-message-id="m1" data-message-author-role="user">
    <div data-message-content>hi</div>
  </div>
  <div data-message-id="m2" data-message-author-role="assistant">
    <div data-message-content><p>hello</p><p>how can I help?</p></div>
  </div>
  <div data-message-id="m2" data-message-author-role="assistant">
    <div data-message-content>duplicate</div>
  </div>
  <div data-message-id="m3" data-message-author-role="assistant" style="display: none">
    <div data-message-content>hidden draft</div>
  </div>
  <div data-message-id="m4" data-message-author-role="user"><div data-message-content>   </div></div>
</main>
</body></html>
"""


def soup_of(html):
    return BeautifulSoup(html, "html.parser")


class TestConversationId:
    def test_chat_path(self):
        assert conversation_id_from_url("https://chatgpt.com/c/abc-123?model=x") == "abc-123"

    def test_gpt_path(self):
        assert conversation_id_from_url("https://chatgpt.com/g/g-xyz") == "g-xyz"

    def test_no_id(self):
        assert conversation_id_from_url("https://chatgpt.com/") == "no-id"


class TestExtractMessages:
    """Tests for the strategy chain."""

    def test_message_id_blocks(self):
        """Visible, non-empty, de-duplicated messages in page order."""
        records = extract_messages(soup_of(PAGE))

        assert [(r.id, r.role) for r in records] == [("m1", "user"), ("m2", "assistant")]
        assert records[0].text == "hi"
        assert records[1].text == "hello\nhow can I help?"

    def test_conversation_turn_fallback(self):
        html = """
        <div data-testid="conversation-turn-1"><div data-message-author-role="user">question</div></div>
        <div data-testid="conversation-turn-2"><div data-message-author-role="assistant">answer</div></div>
        """
        records = extract_messages(soup_of(html))

        assert [(r.role, r.text) for r in records] == [("user", "question"), ("assistant", "answer")]
        assert records[0].id == "no-id-0"

    def test_feed_list_item_fallback(self):
        html = """
        <div role="feed">
          <div role="listitem">one</div>
          <div role="listitem">one</div>
          <div role="listitem" aria-hidden="true">skip</div>
          <div role="listitem">two</div>
        </div>
        """
        records = extract_messages(soup_of(html))

        assert [r.text for r in records] == ["one", "two"]
        assert all(r.role == "unknown" for r in records)

    def test_first_strategy_with_results_wins(self):
        html = """
        <div data-message-id="a" data-message-author-role="user">primary</div>
        <div data-testid="conversation-turn-9">secondary</div>
        """
        records = extract_messages(soup_of(html))
        assert [r.text for r in records] == ["primary"]

    def test_empty_page(self):
        assert extract_messages(soup_of("<html><body></body></html>")) == []


class TestTitle:
    def test_heading_with_nbsp(self):
        assert extract_title(soup_of(PAGE)) == "Trip planning"

    def test_document_title_fallback(self):
        assert extract_title(soup_of("<title> My chat </title>")) == "My chat"

    def test_default(self):
        assert extract_title(soup_of("<body></body>")) == "ChatGPT Conversation"


class TestRendering:
    def test_markdown_layout(self):
        messages = [MessageRecord("1", "user", "hi"), MessageRecord("2", "assistant", "hello")]
        at = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

        doc = render_markdown(messages, "Title", at)

        assert doc == (
            "# Title\n"
            "_Snapshot @ 2026-01-02T03:04:05.678Z_\n"
            "\n---\n**USER**\n\nhi\n"
            "\n---\n**ASSISTANT**\n\nhello\n"
            "\n"
        )

    def test_body_has_no_timestamp(self):
        doc = render_markdown([MessageRecord("1", "user", "hi")], "Title")
        assert "Snapshot @" not in doc

    def test_file_name_by_conversation(self):
        assert file_name_for("abc123", "whatever") == "ChatGPT — abc123.md"

    def test_file_name_without_conversation(self):
        name = file_name_for("no-id", 'a/b:c*"d"', datetime(2026, 3, 9))
        assert name == "2026-03-09 — a-b-c-d-.md"

    def test_file_name_title_truncated(self):
        name = file_name_for("no-id", "x" * 200, datetime(2026, 3, 9))
        assert name == f"2026-03-09 — {'x' * 80}.md"


class TestTakeSnapshot:
    def test_snapshot(self):
        at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        snap = take_snapshot(PAGE, "https://chatgpt.com/c/abc123", now=at)

        assert snap.conversation_id == "abc123"
        assert snap.title == "Trip planning"
        assert len(snap.messages) == 2
        assert snap.document.startswith("# Trip planning\n_Snapshot @ 2026-01-01T00:00:00.000Z_\n")
        assert "**USER**\n\nhi" in snap.body
        assert "Snapshot @" not in snap.body

    def test_no_messages_returns_none(self):
        assert take_snapshot("<html></html>", "https://chatgpt.com/c/abc") is None
