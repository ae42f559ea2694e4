from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from companion_history.storage.models import ChatIndexEntry

_DEFAULT_DIR = "~/.local/share/companion-history"


@dataclass
class TitleGenerationOptions:
    adapter: str | None = None
    model: str | None = None
    refresh_every_n_prompts: int = 0
    max_refreshes: int = 3
    format_title: Callable[[str], str] | None = None


@dataclass
class SummaryGenerationOptions:
    adapter: str | None = None
    model: str | None = None
    context_size: int = 90_000
    include_references: bool = True
    include_tool_outputs: bool = True
    system_prompt: str | None = None
    format_summary: Callable[[str], str] | None = None


@dataclass
class HistoryConfig:
    auto_save: bool = True
    auto_generate_title: bool = True
    title_generation: TitleGenerationOptions = field(default_factory=TitleGenerationOptions)
    summary_generation: SummaryGenerationOptions = field(default_factory=SummaryGenerationOptions)
    expiration_days: int = 0
    delete_on_clearing_chat: bool = False
    continue_last_chat: bool = False
    dir_to_save: str = _DEFAULT_DIR
    default_buf_title: str = "[CodeCompanion] "
    enable_logging: bool = False
    log_level: str = "INFO"
    log_consumers: list | None = None
    adapters: dict = field(default_factory=dict)
    chat_filter: Callable[[ChatIndexEntry], bool] | None = None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_history_config(config: dict) -> HistoryConfig:
    return HistoryConfig(
        auto_save=_to_bool(config.get("AutoSave", True), default=True),
        auto_generate_title=_to_bool(config.get("AutoGenerateTitle", True), default=True),
        title_generation=TitleGenerationOptions(
            adapter=_optional_str(config.get("TitleAdapter")),
            model=_optional_str(config.get("TitleModel")),
            refresh_every_n_prompts=max(0, int(config.get("TitleRefreshEveryNPrompts", 0))),
            max_refreshes=max(0, int(config.get("TitleMaxRefreshes", 3))),
        ),
        summary_generation=SummaryGenerationOptions(
            adapter=_optional_str(config.get("SummaryAdapter")),
            model=_optional_str(config.get("SummaryModel")),
            context_size=int(config.get("SummaryContextSize", 90_000)),
            include_references=_to_bool(config.get("SummaryIncludeReferences", True), default=True),
            include_tool_outputs=_to_bool(config.get("SummaryIncludeToolOutputs", True), default=True),
            system_prompt=_optional_str(config.get("SummarySystemPrompt")),
        ),
        expiration_days=max(0, int(config.get("ExpirationDays", 0))),
        delete_on_clearing_chat=_to_bool(config.get("DeleteOnClearingChat", False), default=False),
        continue_last_chat=_to_bool(config.get("ContinueLastChat", False), default=False),
        dir_to_save=str(config.get("DirToSave", _DEFAULT_DIR)),
        default_buf_title=str(config.get("DefaultBufTitle", "[CodeCompanion] ")),
        enable_logging=_to_bool(config.get("EnableLogging", False), default=False),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        adapters=config.get("Adapters", {}),
    )
