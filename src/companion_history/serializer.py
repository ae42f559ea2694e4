from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from companion_history.adapters import AdapterRegistry
from companion_history.errors import ModelUnavailable
from companion_history.host import Notifier
from companion_history.session import ChatSession
from companion_history.storage.codec import merge_context_items
from companion_history.storage.models import SessionRecord


@dataclass
class RestoredSession:
    save_id: str | None
    title: str | None
    messages: list[dict]
    context_items: list[dict]
    adapter: str | None
    settings: dict[str, Any] = field(default_factory=dict)
    cycle: int = 1
    title_refresh_count: int = 0
    cwd: str | None = None
    tool_schemas: dict[str, Any] = field(default_factory=dict)
    tools_in_use: dict[str, Any] = field(default_factory=dict)

    def into_session(self, handle: int) -> ChatSession:
        return ChatSession(
            handle=handle,
            save_id=self.save_id,
            title=self.title,
            messages=self.messages,
            context_items=self.context_items,
            settings=self.settings,
            adapter=self.adapter,
            cycle=self.cycle,
            title_refresh_count=self.title_refresh_count,
            cwd=self.cwd,
            tool_schemas=self.tool_schemas,
            tools_in_use=self.tools_in_use,
        )


def to_record(session: ChatSession) -> SessionRecord:
    if not session.save_id:
        raise ValueError("Session has no save_id")
    return SessionRecord(
        save_id=session.save_id,
        title=session.title,
        messages=copy.deepcopy(session.messages),
        context_items=copy.deepcopy(merge_context_items([], session.context_items)),
        settings=copy.deepcopy(session.settings),
        adapter=session.adapter,
        cycle=max(1, int(session.cycle or 1)),
        title_refresh_count=max(0, int(session.title_refresh_count or 0)),
        cwd=session.cwd,
        tool_schemas=copy.deepcopy(session.tool_schemas),
        tools_in_use=copy.deepcopy(session.tools_in_use),
    )


def _needs_input_prompt(last_message: dict) -> bool:
    if last_message.get("role") != "user":
        return True
    opts = last_message.get("opts") or {}
    return opts.get("visible") is False


def from_record(
    record: SessionRecord,
    adapters: AdapterRegistry,
    *,
    notifier: Notifier | None = None,
    adapter_override: str | None = None,
) -> RestoredSession:
    """Rebuild the input a host needs to reopen a saved chat.

    Raises AdapterUnavailable when the stored adapter is no longer configured;
    callers prompt for a replacement and retry with ``adapter_override``.
    """
    messages = copy.deepcopy(record.messages)
    if messages and _needs_input_prompt(messages[-1]):
        logger.trace("Adding empty user message to ensure header visibility")
        messages.append({"role": "user", "content": "", "opts": {"visible": True}})

    adapter_name = adapter_override or record.adapter
    settings = copy.deepcopy(record.settings)
    if adapter_name:
        spec = adapters.resolve(adapter_name)
        if adapter_override:
            settings = adapters.default_settings(spec)
        else:
            try:
                adapters.check_model(spec, settings.get("model"))
            except ModelUnavailable as ex:
                logger.info(str(ex))
                if notifier is not None:
                    notifier.notify(str(ex), "info")
                settings = adapters.default_settings(spec)

    return RestoredSession(
        save_id=record.save_id,
        title=record.title,
        messages=messages,
        context_items=merge_context_items([], copy.deepcopy(record.context_items)),
        adapter=adapter_name,
        settings=settings,
        cycle=record.cycle or 1,
        title_refresh_count=record.title_refresh_count or 0,
        cwd=record.cwd,
        tool_schemas=copy.deepcopy(record.tool_schemas),
        tools_in_use=copy.deepcopy(record.tools_in_use),
    )
