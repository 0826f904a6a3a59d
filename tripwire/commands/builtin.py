"""Built-in commands available in every bot unless disabled.

``ping`` answers ``pong``; ``help`` lists every registered pattern.
"""

from ..transport.base import Attachment, AttachmentField
from .base import TriggerKind, respond_to
from .registry import get_registry

_ADDRESS = r"^\s*(?:<@\w+>\s*)?"

_KIND_TITLES = {
    TriggerKind.RESPOND_TO: "When mentioned or messaged directly",
    TriggerKind.LISTEN: "In any channel message",
}


class BuiltinCommands:

    @respond_to(_ADDRESS + r"ping\s*$")
    def ping(self):
        return "pong"

    @respond_to(_ADDRESS + r"help\s*$")
    def help(self):
        registry = get_registry()
        fields = []
        for kind in (TriggerKind.RESPOND_TO, TriggerKind.LISTEN):
            patterns = [f"`{d.pattern.pattern}`" for d in registry.descriptors_for(kind)]
            if patterns:
                fields.append(AttachmentField(title=_KIND_TITLES[kind], value="\n".join(patterns)))
        return Attachment(
            title="Available commands",
            fallback="Available commands",
            color="#439FE0",
            fields=fields,
        )
