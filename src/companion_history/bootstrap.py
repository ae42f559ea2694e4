from __future__ import annotations

from dataclasses import dataclass

from companion_history.adapters import AdapterRegistry, parse_adapter_specs
from companion_history.app_config import HistoryConfig
from companion_history.events import EventEmitter
from companion_history.generation.text_client import ProviderTextGenerator, TextGenerator
from companion_history.history import History
from companion_history.host import LoguruNotifier, Notifier, Picker, Prompter, SessionOpener, TitleSink
from companion_history.logging_config import setup_logging
from companion_history.storage.store import HistoryStore


@dataclass
class HistoryRuntime:
    config: HistoryConfig
    store: HistoryStore
    adapters: AdapterRegistry
    text_generator: TextGenerator
    log_descriptions: list[str]


def bootstrap_runtime(config: HistoryConfig, *, text_generator: TextGenerator | None = None) -> HistoryRuntime:
    log_descriptions = setup_logging(
        level=config.log_level,
        consumers=config.log_consumers,
        enabled=config.enable_logging,
        history_dir=config.dir_to_save,
    )
    store = HistoryStore(config.dir_to_save, expiration_days=config.expiration_days)
    return HistoryRuntime(
        config=config,
        store=store,
        adapters=parse_adapter_specs(config.adapters),
        text_generator=text_generator or ProviderTextGenerator(),
        log_descriptions=log_descriptions,
    )


def create_history(
    runtime: HistoryRuntime,
    *,
    title_sink: TitleSink,
    notifier: Notifier | None = None,
    prompter: Prompter | None = None,
    picker: Picker | None = None,
    session_opener: SessionOpener | None = None,
    events: EventEmitter | None = None,
) -> History:
    """Wire a History instance for a host that supplies its UI collaborators."""
    return History(
        runtime.config,
        runtime.store,
        runtime.adapters,
        runtime.text_generator,
        notifier or LoguruNotifier(),
        title_sink,
        prompter=prompter,
        picker=picker,
        session_opener=session_opener,
        events=events,
    )
