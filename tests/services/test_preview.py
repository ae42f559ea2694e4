import unittest

from companion_history.services.preview import format_preview_lines
from companion_history.services.session_controller import SessionController
from companion_history.storage import ChatIndexEntry, SessionRecord, SummaryIndexEntry


class PreviewTests(unittest.TestCase):
    def test_settings_front_matter_is_sorted_with_model_first(self) -> None:
        record = SessionRecord(
            save_id="1",
            adapter="anthropic",
            settings={"temperature": 0.2, "model": "claude-haiku-4-5", "max_tokens": 512},
        )

        lines = format_preview_lines(record)

        self.assertEqual(
            [
                "---",
                'adapter: "anthropic"',
                'model: "claude-haiku-4-5"',
                "max_tokens: 512",
                "temperature: 0.2",
                "---",
                "",
                "## User",
                "",
                "",
            ],
            lines,
        )

    def test_context_items_and_messages(self) -> None:
        record = SessionRecord(
            save_id="1",
            context_items=[
                {"id": "<buf>a.py</buf>", "opts": {"pinned": True}},
                {"id": "<file>b.py</file>", "opts": {"visible": False}},
                {"id": "<file>c.py</file>"},
            ],
            messages=[
                {"role": "system", "content": "hidden system prompt"},
                {"role": "user", "content": "Fix the bug\n"},
                {"role": "user", "content": "secret", "opts": {"visible": False}},
                {"role": "assistant", "content": "Running tests"},
                {"role": "assistant", "content": {"content": "3 passed"}, "opts": {"tag": "tool_output"}},
                {"role": "assistant", "content": {"blocks": 1}},
            ],
        )

        lines = format_preview_lines(record)

        self.assertEqual(
            [
                "> Context:",
                "> - 📌 <buf>a.py</buf>",
                "> - <file>c.py</file>",
                "",
                "## User",
                "",
                "Fix the bug",
                "",
                "## Assistant",
                "",
                "Running tests",
                "### Tool Output",
                "",
                "3 passed",
                "[Message Cannot Be Displayed]",
            ],
            lines,
        )


class SessionControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._controller = SessionController(line_prefix="> ", short_id_len=4)

    def test_chat_list_entry(self) -> None:
        entry = ChatIndexEntry(
            save_id="1700000000",
            title="Vim Files",
            updated_at=1000,
            message_count=4,
            adapter="anthropic",
            model="claude-haiku-4-5",
            has_summary=True,
        )

        line = self._controller.format_chat_list_entry(entry, active_save_id="1700000000", now=1030)

        self.assertEqual(
            "> * Vim Files (📝) [1700] (id=1700000000) (messages=4, model=anthropic/claude-haiku-4-5, updated=just now)",
            line,
        )

    def test_summary_list_entry(self) -> None:
        entry = SummaryIndexEntry(summary_id="abc", chat_id="1", chat_title="Vim Files", generated_at=1000)

        line = self._controller.format_summary_list_entry(entry, now=1000 + 3 * 3600)

        self.assertEqual(">   Vim Files [abc] (chat=1, generated=3h ago)", line)
