import asyncio
import logging
import re
from typing import Optional, Protocol, Set

from chatrouter.schemas.inbound import Language

logger = logging.getLogger(__name__)

_CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")

TRADITIONAL_MARKERS = ("繁體", "繁体", "台灣", "台湾", "臺灣", "臺湾")

# Common characters whose simplified and traditional forms differ, paired by index.
TRADITIONAL_CHARS = "個們這來為與說話時間會過還沒見現點開關"
SIMPLIFIED_CHARS = "个们这来为与说话时间会过还没见现点开关"


class LanguagePreferenceStore(Protocol):
    """Persistence collaborator for the user's preferred language."""

    async def update_language(self, user_id: str, language: Language) -> None:
        ...


def detect_language(text: str) -> Language:
    """Classify the script of ``text`` as English, Simplified or Traditional Chinese."""
    if not text or not _CJK_PATTERN.search(text):
        return Language.EN

    if any(marker in text for marker in TRADITIONAL_MARKERS):
        return Language.ZH_TRADITIONAL

    traditional = sum(text.count(char) for char in TRADITIONAL_CHARS)
    simplified = sum(text.count(char) for char in SIMPLIFIED_CHARS)
    if traditional > simplified:
        return Language.ZH_TRADITIONAL
    return Language.ZH_SIMPLIFIED


class LanguageDetector:
    """Detects message language and reports preference changes in the background."""

    def __init__(self, store: Optional[LanguagePreferenceStore] = None) -> None:
        self._store = store
        self._pending: Set[asyncio.Task] = set()

    def detect(self, text: str) -> Language:
        return detect_language(text)

    def detect_and_update(
        self, user_id: str, text: str, current: Language
    ) -> Language:
        """
        Return the detected language and, when it differs from ``current``,
        schedule a fire-and-forget preference update.

        The update never delays the caller and its failures are only logged.
        Must be called from a running event loop when a store is configured.
        """
        detected = detect_language(text)
        if detected == current or self._store is None:
            return detected

        logger.info(
            "language change detected",
            extra={"from_language": current.value, "to_language": detected.value},
        )
        try:
            task = asyncio.get_running_loop().create_task(
                self._store.update_language(user_id, detected)
            )
        except RuntimeError:
            logger.warning("No running event loop; skipping language update for %s", user_id)
            return detected

        self._pending.add(task)
        task.add_done_callback(self._on_update_done)
        return detected

    async def drain(self) -> None:
        """Wait for outstanding preference updates (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_update_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "language preference update failed: %s",
                error,
                extra={"error_type": type(error).__name__},
            )
