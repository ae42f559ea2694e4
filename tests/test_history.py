import asyncio

from companion_history.app_config import HistoryConfig, SummaryGenerationOptions, TitleGenerationOptions
from companion_history.errors import GenerationFailed
from companion_history.events import CHAT_DELETED, SUMMARY_SAVED, TITLE_RENAMED, EventEmitter
from companion_history.generation import DECIDING_TITLE
from companion_history.history import History
from companion_history.session import ChatSession
from companion_history.storage import HistoryStore, SummaryRecord
from tests.fakes import (
    FakePicker,
    FakePrompter,
    FakeSessionOpener,
    FakeTextGenerator,
    FakeTitleSink,
    RecordingNotifier,
    make_adapters,
)
from tests.storage.base import HistoryStoreTestCase, make_record


def _user(text: str) -> dict:
    return {"role": "user", "content": text, "opts": {"visible": True}}


def _assistant(text: str) -> dict:
    return {"role": "assistant", "content": text}


class HistoryTestCase(HistoryStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._text = FakeTextGenerator()
        self._notifier = RecordingNotifier()
        self._sink = FakeTitleSink()
        self._opener = FakeSessionOpener()
        self._picker = FakePicker()
        self._prompter = FakePrompter()
        self._events = EventEmitter()
        self._emitted: list[tuple[str, dict]] = []
        self._events.subscribe("*", lambda event_type, payload: self._emitted.append((event_type, payload)))

    def make_history(self, **config) -> History:
        return History(
            HistoryConfig(**config),
            self._store,
            make_adapters(),
            self._text,
            self._notifier,
            self._sink,
            prompter=self._prompter,
            picker=self._picker,
            session_opener=self._opener,
            events=self._events,
        )

    def new_session(self, handle: int = 1, *messages: dict, **kwargs) -> ChatSession:
        kwargs.setdefault("adapter", "anthropic")
        kwargs.setdefault("settings", {"model": "claude-haiku-4-5"})
        return ChatSession(handle=handle, messages=list(messages), **kwargs)

    def emitted(self, event_type: str) -> list[dict]:
        return [payload for kind, payload in self._emitted if kind == event_type]


class SessionLifecycleTests(HistoryTestCase):
    def test_created_session_gets_save_id_and_base_title(self) -> None:
        history = self.make_history(default_buf_title="[CC] ")
        session = self.new_session(5)

        history.on_session_created(session)

        self.assertTrue(session.save_id)
        self.assertEqual("✨ [CC] 5", self._sink.names[5])

    def test_created_session_with_summary_shows_indicator(self) -> None:
        history = self.make_history()
        self._store.save_summary(
            SummaryRecord(summary_id="s1", chat_id="77", chat_title="Old", generated_at=1, content="body")
        )
        session = self.new_session(2, save_id="77", title="Old")

        history.on_session_created(session)

        self.assertEqual("✨ Old (📝)", self._sink.names[2])

    def test_turn_finished_auto_saves_chat_interactions_only(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("hi"), save_id="10")

        history.on_turn_finished(session, interaction="inline")
        self.assertIsNone(self._store.load_chat("10"))

        history.on_turn_finished(session)
        self.assertEqual(1, len(self._store.load_chat("10").messages))

    def test_auto_save_disabled(self) -> None:
        history = self.make_history(auto_save=False)
        session = self.new_session(1, _user("hi"), save_id="10")

        history.on_turn_finished(session)

        self.assertIsNone(self._store.load_chat("10"))
        self.assertTrue(history.save_session(session))
        self.assertIsNotNone(self._store.load_chat("10"))

    def test_cleared_session_gets_new_id_and_optionally_deletes(self) -> None:
        history = self.make_history(delete_on_clearing_chat=True)
        session = self.new_session(1, _user("hi"), save_id="10", title="Old", title_refresh_count=2)
        history.on_session_created(session)
        history.save_session(session)

        history.on_session_cleared(session)

        self.assertIsNone(self._store.load_chat("10"))
        self.assertNotEqual("10", session.save_id)
        self.assertIsNone(session.title)
        self.assertEqual(0, session.title_refresh_count)
        self.assertEqual([{"save_id": "10"}], [{"save_id": p["save_id"]} for p in self.emitted(CHAT_DELETED)])

    def test_continue_last_chat_restores_once(self) -> None:
        self.save_at(make_record("old", "Yesterday", messages=[_user("q"), _assistant("a")]), 10)
        self.save_at(make_record("older", "Last week"), 5)
        history = self.make_history(continue_last_chat=True)
        first = self.new_session(1)

        history.on_session_created(first)

        self.assertEqual([1], self._opener.closed)
        restored = self._opener.active
        self.assertEqual("old", restored.save_id)
        self.assertEqual("user", restored.messages[-1]["role"])
        self.assertEqual("", restored.messages[-1]["content"])

        second = self.new_session(2)
        history.on_session_created(second)
        self.assertEqual([1], self._opener.closed)


class TitleGenerationFlowTests(HistoryTestCase):
    def test_first_prompt_generates_and_saves_title(self) -> None:
        self._text.responses = ["Capital of France"]
        history = self.make_history()
        session = self.new_session(1, _user("What is the capital of France?"))
        history.on_session_created(session)

        title = asyncio.run(history.on_session_submitted(session))

        self.assertEqual("Capital of France", title)
        self.assertEqual("Capital of France", session.title)
        self.assertEqual("✨ Capital of France", self._sink.names[1])
        self.assertIn("✨ " + DECIDING_TITLE, self._sink.attempts)
        self.assertEqual("Capital of France", self._store.load_chat(session.save_id).title)

    def test_no_refresh_when_interval_is_zero(self) -> None:
        history = self.make_history(title_generation=TitleGenerationOptions(refresh_every_n_prompts=0))
        session = self.new_session(1, *[_user(f"q{i}") for i in range(6)], title="Fixed")
        history.on_session_created(session)

        self.assertIsNone(asyncio.run(history.on_session_submitted(session)))

        self.assertEqual([], self._text.calls)
        self.assertEqual("Fixed", session.title)

    def test_refresh_increments_counter_until_max(self) -> None:
        self._text.responses = ["Second Title"]
        history = self.make_history(
            title_generation=TitleGenerationOptions(refresh_every_n_prompts=2, max_refreshes=1),
        )
        session = self.new_session(1, _user("one"), _assistant("a"), _user("two"), title="First")
        history.on_session_created(session)

        asyncio.run(history.on_session_submitted(session))
        self.assertEqual("Second Title", session.title)
        self.assertEqual(1, session.title_refresh_count)

        session.messages.extend([_assistant("b"), _user("three"), _assistant("c"), _user("four")])
        asyncio.run(history.on_session_submitted(session))

        self.assertEqual(1, len(self._text.calls))
        self.assertEqual(1, self._store.load_chat(session.save_id).title_refresh_count)

    def test_concurrent_submits_make_one_call(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)

        async def run() -> list:
            self._text.gate = asyncio.Event()
            first = asyncio.create_task(history.on_session_submitted(session))
            await asyncio.sleep(0)
            second = await history.on_session_submitted(session)
            self._text.gate.set()
            return [await first, second]

        results = asyncio.run(run())

        self.assertEqual(["Generated Title", None], results)
        self.assertEqual(1, len(self._text.calls))

    def test_late_title_is_dropped_after_close(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)
        save_id = session.save_id

        async def run():
            self._text.gate = asyncio.Event()
            task = asyncio.create_task(history.on_session_submitted(session))
            await asyncio.sleep(0)
            history.on_session_closed(session)
            self._store.delete_chat(save_id)
            self._text.gate.set()
            return await task

        self.assertIsNone(asyncio.run(run()))
        self.assertIsNone(session.title)
        self.assertIsNone(self._store.load_chat(save_id))

    def test_late_title_is_dropped_after_clear(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)

        async def run():
            self._text.gate = asyncio.Event()
            task = asyncio.create_task(history.on_session_submitted(session))
            await asyncio.sleep(0)
            history.on_session_cleared(session)
            self._text.gate.set()
            return await task

        self.assertIsNone(asyncio.run(run()))
        self.assertIsNone(session.title)

    def test_failure_reverts_title_and_notifies_once(self) -> None:
        self._text.error = GenerationFailed("timeout")
        history = self.make_history(default_buf_title="[CC] ")
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)

        self.assertIsNone(asyncio.run(history.on_session_submitted(session)))

        self.assertEqual("✨ [CC] 1", self._sink.names[1])
        self.assertEqual(["Failed to generate title: timeout"], self._notifier.levels("warn"))

    def test_failing_title_formatter_reverts_title(self) -> None:
        def broken_format(title: str) -> str:
            raise ValueError("formatter bug")

        history = self.make_history(
            default_buf_title="[CC] ",
            title_generation=TitleGenerationOptions(format_title=broken_format),
        )
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)

        self.assertIsNone(asyncio.run(history.on_session_submitted(session)))

        self.assertIsNone(session.title)
        self.assertEqual("✨ [CC] 1", self._sink.names[1])
        warnings = self._notifier.levels("warn")
        self.assertEqual(1, len(warnings))
        self.assertIn("formatter bug", warnings[0])

    def test_host_transport_error_reverts_title(self) -> None:
        self._text.error = ConnectionError("connection reset")
        history = self.make_history(default_buf_title="[CC] ")
        session = self.new_session(1, _user("q"))
        history.on_session_created(session)

        self.assertIsNone(asyncio.run(history.on_session_submitted(session)))

        self.assertEqual("✨ [CC] 1", self._sink.names[1])
        self.assertEqual(["Failed to generate title: connection reset"], self._notifier.levels("warn"))
        self.assertFalse(history.title_generator.is_generating(session))

    def test_acp_chat_reports_unsupported_backend(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"), adapter="claude_code")
        history.on_session_created(session)

        asyncio.run(history.on_session_submitted(session))

        self.assertEqual([], self._text.calls)
        self.assertEqual(1, len(self._notifier.levels("warn")))
        self.assertIn("ACP adapters are not supported", self._notifier.levels("warn")[0])


class SummaryFlowTests(HistoryTestCase):
    def test_generate_summary_saves_and_shows_indicator(self) -> None:
        self._text.responses = ["## Summary\n\nDone"]
        history = self.make_history()
        session = self.new_session(1, _user("q"), _assistant("a"), save_id="10", title="Work")
        history.on_session_created(session)

        summary = asyncio.run(history.generate_summary(session))

        self.assertEqual("## Summary\n\nDone", history.load_summary(summary.summary_id))
        self.assertEqual("✨ Work (📝)", self._sink.names[1])
        self.assertEqual(summary.path, self.emitted(SUMMARY_SAVED)[0]["path"])

    def test_regenerating_reuses_summary_id(self) -> None:
        self._text.responses = ["first", "second"]
        history = self.make_history()
        session = self.new_session(1, _user("q"), save_id="10", title="Work")

        first = asyncio.run(history.generate_summary(session))
        second = asyncio.run(history.generate_summary(session))

        self.assertEqual(first.summary_id, second.summary_id)
        self.assertEqual(1, len(history.get_summaries()))
        self.assertEqual("second", history.load_summary(first.summary_id))

    def test_summary_failure_reverts_title(self) -> None:
        self._text.error = GenerationFailed("boom")
        history = self.make_history()
        session = self.new_session(1, _user("q"), save_id="10", title="Work")

        self.assertIsNone(asyncio.run(history.generate_summary(session)))

        self.assertEqual("✨ Work", self._sink.names[1])
        self.assertEqual(["Failed to generate summary: boom"], self._notifier.levels("error"))

    def test_unexpected_summary_errors_are_reported(self) -> None:
        def broken_format(summary: str) -> str:
            raise KeyError("section")

        for options, error in (
            (SummaryGenerationOptions(format_summary=broken_format), None),
            (SummaryGenerationOptions(), ConnectionError("connection reset")),
        ):
            self._text.error = error
            self._text.responses = ["Body"]
            self._notifier.messages.clear()
            history = self.make_history(summary_generation=options)
            session = self.new_session(1, _user("q"), save_id="10", title="Work")

            self.assertIsNone(asyncio.run(history.generate_summary(session)))

            self.assertEqual("✨ Work", self._sink.names[1])
            self.assertEqual(1, len(self._notifier.levels("error")))
            self.assertEqual([], history.get_summaries())

    def test_summary_and_chat_are_deleted_independently(self) -> None:
        history = self.make_history(summary_generation=SummaryGenerationOptions())
        session = self.new_session(1, _user("q"), save_id="10", title="Work")
        history.save_session(session)
        summary = asyncio.run(history.generate_summary(session))

        self.assertEqual(1, history.delete_summaries([summary.summary_id]))
        self.assertIsNotNone(history.load_chat("10"))

        asyncio.run(history.generate_summary(session))
        self.assertEqual(1, history.delete_chats(["10"]))
        self.assertEqual(1, len(history.get_summaries()))

    def test_duplicate_of_summarized_chat_has_no_summary(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"), save_id="10", title="Work")
        history.save_session(session)
        asyncio.run(history.generate_summary(session))

        new_id = history.duplicate_chat("10", "Copy")

        entries = {c.save_id: c for c in history.get_chats()}
        self.assertTrue(entries["10"].has_summary)
        self.assertFalse(entries[new_id].has_summary)

    def test_attach_summary_to_active_chat(self) -> None:
        self._store.save_summary(
            SummaryRecord(summary_id="s1", chat_id="5", chat_title="Parser", generated_at=1, content="Body")
        )
        history = self.make_history()
        active = self.new_session(3, _user("q"), save_id="9")
        self._opener.active = active

        self.assertTrue(history.attach_summary("s1"))

        message = active.messages[-1]
        self.assertEqual({"context_id": "<summary>Parser</summary>", "visible": False}, message["opts"])
        self.assertIn("Chat Title: Parser", message["content"])
        self.assertEqual([{"id": "<summary>Parser</summary>", "source": "summary"}], active.context_items)


class CommandTests(HistoryTestCase):
    def test_rename_updates_open_session_and_emits(self) -> None:
        history = self.make_history()
        session = self.new_session(1, _user("q"), save_id="10", title="Old")
        history.on_session_created(session)
        history.save_session(session)

        self.assertTrue(history.rename_chat("10", "  New Name "))

        self.assertEqual("New Name", session.title)
        self.assertEqual("✨ New Name", self._sink.names[1])
        self.assertEqual("New Name", self.emitted(TITLE_RENAMED)[0]["title"])
        self.assertFalse(history.rename_chat("10", "   "))

    def test_list_is_ordered_by_recency(self) -> None:
        history = self.make_history()
        self.save_at(make_record("a"), 10)
        self.save_at(make_record("b"), 30)
        self.save_at(make_record("c"), 20)

        self.assertEqual([30, 20, 10], [c.updated_at for c in history.get_chats()])

    def test_expiration_runs_on_store_construction(self) -> None:
        self.save_at(make_record("old"), 1)

        store = HistoryStore(self._store.get_location(), expiration_days=1)

        self.assertEqual([], store.get_chats())

    def test_open_chat_prompts_for_missing_adapter(self) -> None:
        self.save_at(make_record("g", "Gemini chat", adapter="gemini", settings={"model": "gemini-pro"}), 10)
        self._prompter = FakePrompter(choice="openai")
        history = self.make_history()

        session = history.open_chat("g")

        self.assertEqual("openai", session.adapter)
        self.assertEqual({"model": "gpt-4o"}, session.settings)

    def test_open_chat_cancelled_adapter_choice(self) -> None:
        self.save_at(make_record("g", "Gemini chat", adapter="gemini"), 10)
        self._prompter = FakePrompter(choice=None)
        history = self.make_history()

        self.assertIsNone(history.open_chat("g"))
        self.assertEqual({}, self._opener.sessions)

    def test_open_chat_already_open(self) -> None:
        self.save_at(make_record("a", "A"), 10)
        history = self.make_history()
        first = history.open_chat("a")

        self.assertIs(first, history.open_chat("a"))
        self.assertIn("Chat already open", self._notifier.levels("info"))

    def test_get_location(self) -> None:
        self.assertEqual(self._store.get_location(), self.make_history().get_location())
