from datetime import timedelta
from typing import List, Optional

from chatrouter.clients.backend import BackendClient
from chatrouter.clients.base import Classifier
from chatrouter.clients.factory import build_classifiers
from chatrouter.core.config import Settings, get_settings
from chatrouter.handlers import BackendUserDirectory, build_backend_registry
from chatrouter.services.commands import CommandMatcher, CommandTable
from chatrouter.services.decision_engine import DecisionEngine
from chatrouter.services.dispatcher import Dispatcher
from chatrouter.services.language import LanguageDetector
from chatrouter.services.provider_chain import ProviderChain
from chatrouter.services.router import MessageRouter
from chatrouter.services.state import DeliveryLedger


_backend_client: Optional[BackendClient] = None
_user_directory: Optional[BackendUserDirectory] = None
_router: Optional[MessageRouter] = None
_classifiers: List[Classifier] = []


def get_backend_client() -> BackendClient:
    """Provide a shared business backend client."""
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient()
    return _backend_client


async def get_user_directory() -> BackendUserDirectory:
    global _user_directory
    if _user_directory is None:
        _user_directory = BackendUserDirectory(get_backend_client())
    return _user_directory


def build_router(config: Settings, backend: BackendClient) -> MessageRouter:
    """Wire the routing core from configuration."""
    table = CommandTable()
    classifiers = build_classifiers(config)
    _classifiers.extend(classifiers)
    chain = ProviderChain(classifiers, timeout_seconds=config.classifier_timeout_seconds)
    dispatcher = Dispatcher(
        build_backend_registry(backend),
        commands=table.commands,
        min_confidence=config.min_decision_confidence,
    )
    return MessageRouter(
        matcher=CommandMatcher(table),
        engine=DecisionEngine(chain),
        dispatcher=dispatcher,
        language_detector=LanguageDetector(BackendUserDirectory(backend)),
        ledger=DeliveryLedger(ttl=timedelta(seconds=config.dedupe_ttl_seconds)),
    )


async def get_router() -> MessageRouter:
    """Provide a shared message router wired with dependencies."""
    global _router
    if _router is None:
        _router = build_router(get_settings(), get_backend_client())
    return _router


async def shutdown() -> None:
    """Finish pending preference updates and close pooled connections."""
    global _backend_client, _user_directory, _router
    if _router is not None:
        await _router.language_detector.drain()
    for classifier in _classifiers:
        close = getattr(classifier, "close", None)
        if close is not None:
            await close()
    _classifiers.clear()
    if _backend_client is not None:
        await _backend_client.close()
    _backend_client = None
    _user_directory = None
    _router = None
