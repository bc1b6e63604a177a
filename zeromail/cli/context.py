"""AppContext: settings plus the long-lived stores shared by CLI commands."""

from zeromail.compose.composer import AnthropicTextGenerator, EmailComposer
from zeromail.compose.extractor import StyleExtractor
from zeromail.config import Settings
from zeromail.mail.types import MailDriver
from zeromail.search.service import SearchService
from zeromail.search.synthesizer import SearchQuerySynthesizer
from zeromail.storage.style_store import WritingStyleStore


class AppContext:
    """Holds Settings and the WritingStyleStore for one CLI invocation.

    Model-backed services are built on demand so commands that never call
    Claude (``query --no-ai``, ``style show``) need no API key.

    Usage::

        app = AppContext(Settings.from_env(), WritingStyleStore())
        service = app.search_service(use_ai=False)
        result = await service.enhance("starred emails")
    """

    def __init__(self, settings: Settings, style_store: WritingStyleStore) -> None:
        self.settings = settings
        self.style_store = style_store

    def close(self) -> None:
        """Release underlying store resources."""
        self.style_store.close()

    def search_service(
        self, driver: MailDriver | None = None, use_ai: bool = True
    ) -> SearchService:
        synthesizer = None
        if use_ai and self.settings.ai_search:
            synthesizer = SearchQuerySynthesizer(
                api_key=self.settings.api_key or None,
                model=self.settings.search_model,
            )
        return SearchService(driver, synthesizer=synthesizer)

    def composer(self) -> EmailComposer:
        return EmailComposer(
            AnthropicTextGenerator(
                api_key=self.settings.api_key or None,
                model=self.settings.compose_model,
            )
        )

    def extractor(self) -> StyleExtractor:
        return StyleExtractor(
            api_key=self.settings.api_key or None,
            model=self.settings.extractor_model,
        )
