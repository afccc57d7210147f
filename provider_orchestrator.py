import logging
import random
import threading
from typing import Iterable, List, Optional, Sequence, Tuple

from art_providers import ArtProvider
from config import ExcludedObjectWords, PreferredProviders, PreferredProviderWeight, ProviderAttempts
from configuration_store import ConfigurationStore
from http_client import HttpClient, OperationCancelled, check_cancelled
from models import ArtworkResult
from security import SecurityError

logger = logging.getLogger(__name__)


class ArtworkRejected(RuntimeError):
    """Candidate failed the content filters"""


class ArtProviderOrchestrator:
    def __init__(
        self,
        providers: Sequence[ArtProvider],
        store: ConfigurationStore,
        http: HttpClient,
        rng: Optional[random.Random] = None,
        preferred: Iterable[str] = PreferredProviders,
        preferred_weight: float = PreferredProviderWeight,
        excluded_words: Iterable[str] = ExcludedObjectWords,
        attempts: int = ProviderAttempts,
    ):
        self.providers = list(providers)
        self.store = store
        self.http = http
        self.rng = rng or random.Random()
        self.preferred = set(preferred)
        self.preferred_weight = preferred_weight
        self.excluded_words = [word.lower() for word in excluded_words]
        self.attempts = max(int(attempts), 1)

    def active_providers(self) -> List[ArtProvider]:
        config = self.store.current
        return [provider for provider in self.providers if config.is_provider_enabled(provider.name)]

    def order_providers(self, providers: Sequence[ArtProvider]) -> List[ArtProvider]:
        """Shuffle, putting the preferred catalogs first most of the time"""
        if self.rng.random() < self.preferred_weight:
            first = [provider for provider in providers if provider.name in self.preferred]
            rest = [provider for provider in providers if provider.name not in self.preferred]
            self.rng.shuffle(first)
            self.rng.shuffle(rest)
            return first + rest
        ordered = list(providers)
        self.rng.shuffle(ordered)
        return ordered

    def check_artwork(self, artwork: ArtworkResult, blacklist: Iterable[str]) -> None:
        title = artwork.title.lower()
        medium = artwork.medium.lower()
        for word in self.excluded_words:
            if word in title or word in medium:
                raise ArtworkRejected(f"Skipping non-fine-art object '{artwork.title}' ({artwork.medium}).")
        if artwork.id in set(blacklist):
            raise ArtworkRejected(f"Skipping blacklisted artwork: {artwork.id}")

    def fetch_next(
        self, cancel_event: Optional[threading.Event] = None
    ) -> Tuple[Optional[ArtworkResult], Optional[bytes]]:
        active = self.active_providers()
        if not active:
            logger.warning("All providers are disabled in settings.")
            return None, None

        for provider in self.order_providers(active):
            for attempt in range(1, self.attempts + 1):
                check_cancelled(cancel_event)
                try:
                    artwork = provider.fetch_one(cancel_event)
                    self.check_artwork(artwork, self.store.current.blacklisted_artwork_ids)

                    logger.info("[%s] Selected: %s by %s", provider.name, artwork.title, artwork.artist)
                    logger.info("[%s] Downloading image...", provider.name)
                    image_bytes = self.http.get_bytes(
                        artwork.image_url,
                        headers=provider.download_headers() or None,
                        cancel_event=cancel_event,
                    )
                    if not image_bytes:
                        raise RuntimeError("Image download returned no data.")
                    logger.info("[%s] Downloaded %dKB", provider.name, len(image_bytes) // 1024)
                    return artwork, image_bytes
                except (SecurityError, OperationCancelled):
                    raise
                except ArtworkRejected as rejected:
                    logger.info("[%s] %s", provider.name, rejected)
                    failure = rejected
                except Exception as error:
                    logger.warning("[%s] Attempt %d/%d failed: %s", provider.name, attempt, self.attempts, error)
                    failure = error
            logger.error("[%s] Failed after %d attempts: %s", provider.name, self.attempts, failure)

        logger.error("All providers failed.")
        return None, None
