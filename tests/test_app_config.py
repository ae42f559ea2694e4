import unittest

from companion_history.app_config import _to_bool, parse_history_config


class ToBoolTests(unittest.TestCase):
    def test_string_values(self) -> None:
        self.assertTrue(_to_bool("yes"))
        self.assertTrue(_to_bool(" ON "))
        self.assertFalse(_to_bool("0"))
        self.assertFalse(_to_bool("off"))

    def test_none_uses_default(self) -> None:
        self.assertTrue(_to_bool(None, default=True))
        self.assertFalse(_to_bool(None))


class ParseHistoryConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = parse_history_config({})

        self.assertTrue(config.auto_save)
        self.assertTrue(config.auto_generate_title)
        self.assertEqual(0, config.title_generation.refresh_every_n_prompts)
        self.assertEqual(3, config.title_generation.max_refreshes)
        self.assertEqual(90_000, config.summary_generation.context_size)
        self.assertEqual(0, config.expiration_days)
        self.assertEqual("[CodeCompanion] ", config.default_buf_title)
        self.assertFalse(config.enable_logging)
        self.assertEqual({}, config.adapters)

    def test_pascal_case_keys(self) -> None:
        config = parse_history_config(
            {
                "AutoSave": "false",
                "TitleAdapter": "openai",
                "TitleModel": "  ",
                "TitleRefreshEveryNPrompts": 3,
                "TitleMaxRefreshes": -1,
                "SummaryIncludeReferences": False,
                "SummarySystemPrompt": "Be brief",
                "ExpirationDays": "30",
                "ContinueLastChat": True,
                "DirToSave": "/tmp/history",
                "EnableLogging": "true",
                "LogLevel": "DEBUG",
            }
        )

        self.assertFalse(config.auto_save)
        self.assertEqual("openai", config.title_generation.adapter)
        self.assertIsNone(config.title_generation.model)
        self.assertEqual(3, config.title_generation.refresh_every_n_prompts)
        self.assertEqual(0, config.title_generation.max_refreshes)
        self.assertFalse(config.summary_generation.include_references)
        self.assertEqual("Be brief", config.summary_generation.system_prompt)
        self.assertEqual(30, config.expiration_days)
        self.assertTrue(config.continue_last_chat)
        self.assertEqual("/tmp/history", config.dir_to_save)
        self.assertTrue(config.enable_logging)
        self.assertEqual("DEBUG", config.log_level)


if __name__ == "__main__":
    unittest.main()
