from companion_history.generation.summary_generator import SummaryGenerator
from companion_history.generation.text_client import ProviderTextGenerator, TextGenerator
from companion_history.generation.title_generator import (
    DECIDING_TITLE,
    INTERIM_LABELS,
    REFRESHING_TITLE,
    TitleGenerator,
)

__all__ = [
    "DECIDING_TITLE",
    "INTERIM_LABELS",
    "REFRESHING_TITLE",
    "ProviderTextGenerator",
    "SummaryGenerator",
    "TextGenerator",
    "TitleGenerator",
]
