from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from chatrouter.clients.base import Classifier
from chatrouter.clients.gemini import GeminiClassifier
from chatrouter.clients.openai_classifier import OpenAIClassifier
from chatrouter.core.config import Settings, settings as default_settings
from chatrouter.errors import ProviderMisconfiguredError

logger = logging.getLogger(__name__)

PROVIDER_BUILDERS: Dict[str, Callable[[Settings], Classifier]] = {
    "gemini": lambda cfg: GeminiClassifier(config=cfg),
    "openai": lambda cfg: OpenAIClassifier(config=cfg),
}


def build_classifiers(config: Optional[Settings] = None) -> List[Classifier]:
    """
    Build the provider chain in the order given by ``CLASSIFIER_PROVIDERS``.

    Unknown names and providers without credentials are skipped with a
    warning, so a partially configured deployment still classifies.
    """
    cfg = config or default_settings
    classifiers: List[Classifier] = []
    for name in cfg.classifier_providers:
        builder = PROVIDER_BUILDERS.get(name)
        if builder is None:
            logger.warning("Unknown classifier provider '%s' ignored.", name)
            continue
        try:
            classifiers.append(builder(cfg))
        except ProviderMisconfiguredError as exc:
            logger.warning("Classifier provider '%s' disabled: %s", name, exc)
    if not classifiers:
        logger.warning("No classifier providers configured; free text resolves to UNKNOWN.")
    return classifiers
