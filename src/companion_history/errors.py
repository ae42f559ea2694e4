from __future__ import annotations


class HistoryError(Exception):
    """Base class for recoverable history failures."""


class AdapterUnavailable(HistoryError):
    def __init__(self, adapter: str):
        super().__init__(f"Adapter '{adapter}' not available, please select another adapter")
        self.adapter = adapter


class ModelUnavailable(HistoryError):
    def __init__(self, model: str, adapter: str):
        super().__init__(f"Model '{model}' is not available in '{adapter}' adapter, using default model.")
        self.model = model
        self.adapter = adapter


class UnsupportedBackend(HistoryError):
    def __init__(self, adapter: str, purpose: str, option: str):
        super().__init__(
            f"ACP adapters are not supported for {purpose} ({adapter}). "
            f"Configure `{option}` to use an HTTP-based adapter."
        )
        self.adapter = adapter


class GenerationFailed(HistoryError):
    pass


class StorageIOFailure(HistoryError):
    pass
