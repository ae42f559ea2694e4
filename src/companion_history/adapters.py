from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from companion_history.errors import AdapterUnavailable, ModelUnavailable

_DEFAULT_ADAPTERS = {
    "anthropic": {
        "Type": "http",
        "Provider": "anthropic",
        "DefaultModel": "claude-sonnet-4-5-20250929",
        "ApiKeyEnv": "ANTHROPIC_API_KEY",
    },
    "openai": {
        "Type": "http",
        "Provider": "openai",
        "DefaultModel": "gpt-4o",
        "ApiKeyEnv": "OPENAI_API_KEY",
    },
}


@dataclass(frozen=True)
class AdapterSpec:
    name: str
    type: str = "http"
    provider: str = "anthropic"
    default_model: str | None = None
    model_choices: tuple[str, ...] = ()
    api_key_env: str | None = None
    base_url: str | None = None

    @property
    def is_acp(self) -> bool:
        return self.type == "acp"


def model_names(choices: object) -> tuple[str, ...]:
    """Flatten a model choice list.

    Choices come either as a list of names or as a mapping keyed by model
    name (values carry per-model options).
    """
    if isinstance(choices, dict):
        return tuple(str(k) for k in choices)
    if isinstance(choices, (list, tuple)):
        names: list[str] = []
        for choice in choices:
            if isinstance(choice, str):
                names.append(choice)
            elif isinstance(choice, dict) and isinstance(choice.get("name"), str):
                names.append(choice["name"])
        return tuple(names)
    return ()


class AdapterRegistry:
    def __init__(self, specs: list[AdapterSpec] | None = None):
        self._specs: dict[str, AdapterSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: AdapterSpec) -> None:
        self._specs[spec.name] = spec

    def names(self) -> list[str]:
        return sorted(self._specs)

    def resolve(self, name: str) -> AdapterSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise AdapterUnavailable(name)
        return spec

    def check_model(self, spec: AdapterSpec, model: str | None) -> None:
        if spec.is_acp or not model or not spec.model_choices:
            return
        if model not in spec.model_choices:
            raise ModelUnavailable(model, spec.name)

    def default_settings(self, spec: AdapterSpec) -> dict:
        if spec.default_model:
            return {"model": spec.default_model}
        return {}


def parse_adapter_specs(config: dict | None) -> AdapterRegistry:
    raw = config if config else _DEFAULT_ADAPTERS
    specs: list[AdapterSpec] = []
    for name, options in raw.items():
        if not isinstance(options, dict):
            logger.warning(f"Ignoring adapter {name!r}: expected an object, got {type(options).__name__}")
            continue
        specs.append(
            AdapterSpec(
                name=name,
                type=str(options.get("Type", "http")).strip().lower(),
                provider=str(options.get("Provider", name)).strip().lower(),
                default_model=options.get("DefaultModel"),
                model_choices=model_names(options.get("Models", [])),
                api_key_env=options.get("ApiKeyEnv"),
                base_url=options.get("BaseUrl"),
            )
        )
    return AdapterRegistry(specs)
