# Generator package

# Makes generate/ importable and exposes the capability interfaces.

from .types import Message, ModelParams, Tier
from .stage_runner import StageRunner
from .clients import build_model_client
from .clients.echo_dev_client import EchoDevClient

__all__ = [
    "Message",
    "ModelParams",
    "Tier",
    "StageRunner",
    "build_model_client",
    "EchoDevClient",
]
