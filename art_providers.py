"""
Museum catalogs that can yield one candidate artwork each.

The set is closed: every catalog is a subclass of ArtProvider and is listed in
build_providers(). Each catalog picks a random page/offset, extracts a usable
image URL and sanitizes any identifier it embeds in a URL.
"""

import logging
import random
import threading
from typing import Any, Dict, List, Optional

from config import AicUserAgent, ProviderAttempts
from http_client import HttpClient, TransportError
from models import ArtworkResult
from security import require_https, sanitize_id

logger = logging.getLogger(__name__)

AIC_SEARCH_URL = "https://api.artic.edu/api/v1/artworks/search"
# widest IIIF rendition AIC serves for public-domain works
AIC_IMAGE_TEMPLATE = "https://www.artic.edu/iiif/2/{image_id}/full/1686,/0/default.jpg"
AIC_FIELDS = "id,title,image_id,artist_title,date_display,medium_display,is_public_domain,artwork_type_title"
AIC_MAX_PAGE = 99
AIC_PAGE_SIZE = 40

CMA_ARTWORKS_URL = "https://openaccess-api.clevelandart.org/api/artworks/"
CMA_MAX_SKIP = 5000

MET_SEARCH_URL = "https://collectionapi.metmuseum.org/public/collection/v1/search"
MET_OBJECT_URL = "https://collectionapi.metmuseum.org/public/collection/v1/objects/{object_id}"

VAM_SEARCH_URL = "https://api.vam.ac.uk/v2/objects/search"
VAM_IMAGE_TEMPLATE = "https://framemark.vam.ac.uk/collections/{image_id}/full/max/0/default.jpg"
VAM_MAX_PAGE = 29
VAM_PAGE_SIZE = 100


class ProviderError(RuntimeError):
    """A catalog answered, but not with something usable"""


class ArtworkNotFoundError(ProviderError):
    """No qualifying record in the catalog response"""


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


class ArtProvider:
    """Base class for a catalog. Subclasses implement _fetch_candidate()."""

    name = ""

    def __init__(self, http: HttpClient, rng: Optional[random.Random] = None,
                 attempts: int = ProviderAttempts):
        self.http = http
        self.rng = rng or random.Random()
        self.attempts = max(int(attempts), 1)

    def fetch_one(self, cancel_event: Optional[threading.Event] = None) -> ArtworkResult:
        logger.info("[%s] Fetching artworks...", self.name)
        last_error: Optional[Exception] = None
        for attempt in range(1, self.attempts + 1):
            try:
                return self._fetch_candidate(cancel_event)
            except (ProviderError, TransportError) as error:
                last_error = error
                logger.warning("[%s] Attempt %d failed: %s", self.name, attempt, error)
        raise last_error or ArtworkNotFoundError(f"{self.name}: failed to fetch artwork after retries.")

    def download_headers(self) -> Dict[str, str]:
        return {}

    def _fetch_candidate(self, cancel_event: Optional[threading.Event]) -> ArtworkResult:
        raise NotImplementedError

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None,
                  cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        payload = self.http.get_json(url, params=params, headers=headers, cancel_event=cancel_event)
        if not isinstance(payload, dict):
            raise ProviderError(f"{self.name}: unexpected response shape ({type(payload).__name__}).")
        error = payload.get("error")
        if error:
            raise ProviderError(f"{self.name}: API error: {str(error)[:150]}")
        return payload

    def _build_result(self, raw_id: Any, title: Any, artist: Any, date: Any, medium: Any,
                      image_url: Optional[str], default_medium: str = "Painting") -> ArtworkResult:
        if not _text(image_url):
            raise ProviderError(f"{self.name}: selected record has no image URL.")
        return ArtworkResult(
            id=sanitize_id(raw_id),
            title=_text(title, "Unknown Title"),
            artist=_text(artist, "Unknown Artist"),
            date=_text(date),
            medium=_text(medium, default_medium),
            image_url=require_https(image_url.strip()),
            provider_name=self.name,
        )


class ArtInstituteOfChicagoProvider(ArtProvider):
    name = "Art Institute of Chicago"

    def _api_headers(self) -> Dict[str, str]:
        return {
            "AIC-User-Agent": AicUserAgent,
            "Accept": "application/json",
            "Referer": "https://www.artic.edu/",
        }

    def download_headers(self) -> Dict[str, str]:
        # the IIIF server rejects requests that don't look like a browser
        return {
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/110.0.0.0 Safari/537.36"
            ),
            "AIC-User-Agent": AicUserAgent,
            "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
            "Referer": "https://www.artic.edu/",
        }

    def _fetch_candidate(self, cancel_event: Optional[threading.Event]) -> ArtworkResult:
        params = {
            "q": "painting",
            "limit": AIC_PAGE_SIZE,
            "fields": AIC_FIELDS,
            "page": self.rng.randint(1, AIC_MAX_PAGE),
        }
        logger.debug("[%s] Fetching artwork list (page %s)", self.name, params["page"])
        payload = self._get_json(AIC_SEARCH_URL, params=params, headers=self._api_headers(),
                                 cancel_event=cancel_event)
        records = payload.get("data") or []
        if not records:
            raise ArtworkNotFoundError(f"{self.name}: no artworks found on this page.")

        indices = list(range(len(records)))
        self.rng.shuffle(indices)
        for index in indices:
            art = records[index]
            if not isinstance(art, dict) or art.get("is_public_domain") is not True:
                continue
            if art.get("artwork_type_title") != "Painting":
                continue
            raw_image_id = _text(art.get("image_id"))
            if not raw_image_id:
                continue
            image_id = sanitize_id(raw_image_id)
            return self._build_result(
                raw_id=image_id,
                title=art.get("title"),
                artist=art.get("artist_title"),
                date=art.get("date_display"),
                medium=art.get("medium_display") or art.get("artwork_type_title"),
                image_url=AIC_IMAGE_TEMPLATE.format(image_id=image_id),
            )

        raise ArtworkNotFoundError(f"{self.name}: no suitable public domain painting found on this page.")


class ClevelandMuseumOfArtProvider(ArtProvider):
    name = "Cleveland Museum of Art"

    def _fetch_candidate(self, cancel_event: Optional[threading.Event]) -> ArtworkResult:
        base_params = {"has_image": 1, "type": "Painting", "limit": 1}
        count_payload = self._get_json(CMA_ARTWORKS_URL, params=base_params, cancel_event=cancel_event)
        try:
            total = int((count_payload.get("info") or {}).get("total") or 0)
        except (TypeError, ValueError):
            total = 0
        if total <= 0:
            raise ArtworkNotFoundError(f"{self.name}: no artworks found.")

        params = dict(base_params)
        params["skip"] = self.rng.randrange(min(total, CMA_MAX_SKIP))
        payload = self._get_json(CMA_ARTWORKS_URL, params=params, cancel_event=cancel_event)
        records = payload.get("data") or []
        if not records or not isinstance(records[0], dict):
            raise ArtworkNotFoundError(f"{self.name}: no artworks found.")

        art = records[0]
        creators = art.get("creators") or []
        artist = creators[0].get("description") if creators and isinstance(creators[0], dict) else None

        images = art.get("images") or {}
        image_url = None
        for variant in ("web", "print"):
            candidate = images.get(variant)
            if isinstance(candidate, dict) and _text(candidate.get("url")):
                image_url = candidate["url"]
                break
        if not image_url:
            raise ProviderError(f"{self.name}: no suitable image found.")

        return self._build_result(
            raw_id=art.get("id"),
            title=art.get("title"),
            artist=artist,
            date=art.get("creation_date"),
            medium=art.get("technique"),
            image_url=image_url,
        )


class MetropolitanMuseumOfArtProvider(ArtProvider):
    name = "Metropolitan Museum of Art"

    def _fetch_candidate(self, cancel_event: Optional[threading.Event]) -> ArtworkResult:
        params = {"isHighlight": "true", "isPublicDomain": "true", "medium": "Paintings", "q": "*"}
        search = self._get_json(MET_SEARCH_URL, params=params, cancel_event=cancel_event)
        object_ids: List[Any] = search.get("objectIDs") or []
        if not object_ids:
            raise ArtworkNotFoundError(f"{self.name}: no artworks found.")

        selected_id = sanitize_id(self.rng.choice(object_ids))
        record = self._get_json(MET_OBJECT_URL.format(object_id=selected_id), cancel_event=cancel_event)
        image_url = _text(record.get("primaryImage")) or _text(record.get("primaryImageSmall"))
        if not image_url:
            raise ProviderError(f"{self.name}: object {selected_id} has no image.")

        return self._build_result(
            raw_id=selected_id,
            title=record.get("title"),
            artist=record.get("artistDisplayName"),
            date=record.get("objectDate"),
            medium=record.get("medium"),
            image_url=image_url,
        )


class VictoriaAndAlbertMuseumProvider(ArtProvider):
    name = "Victoria and Albert Museum"

    @staticmethod
    def _image_id(record: Dict[str, Any]) -> str:
        image_id = _text(record.get("_primaryImageId"))
        if image_id:
            return image_id
        # thumbnails look like https://framemark.vam.ac.uk/collections/<id>/full/!100,100/0/default.jpg
        thumbnail = _text((record.get("_images") or {}).get("_primary_thumbnail"))
        marker = "/collections/"
        if marker in thumbnail:
            return thumbnail.split(marker, 1)[1].split("/", 1)[0]
        return ""

    def _fetch_candidate(self, cancel_event: Optional[threading.Event]) -> ArtworkResult:
        params = {
            "images_exist": 1,
            # v2 search field; there is no plain material filter
            "q_object_name": "painting",
            "page_size": VAM_PAGE_SIZE,
            "page": self.rng.randint(1, VAM_MAX_PAGE),
        }
        payload = self._get_json(VAM_SEARCH_URL, params=params, cancel_event=cancel_event)
        records = [record for record in payload.get("records") or [] if isinstance(record, dict)]
        if not records:
            raise ArtworkNotFoundError(f"{self.name}: no artworks found.")

        record = self.rng.choice(records)
        raw_image_id = self._image_id(record)
        if not raw_image_id:
            raise ProviderError(f"{self.name}: no suitable image found.")
        image_id = sanitize_id(raw_image_id)

        maker = record.get("_primaryMaker") or {}
        return self._build_result(
            raw_id=record.get("systemNumber"),
            title=record.get("_primaryTitle"),
            artist=maker.get("name") if isinstance(maker, dict) else None,
            date=record.get("_primaryDate"),
            medium="Painting",
            image_url=VAM_IMAGE_TEMPLATE.format(image_id=image_id),
        )


PROVIDER_CLASSES = (
    ArtInstituteOfChicagoProvider,
    ClevelandMuseumOfArtProvider,
    MetropolitanMuseumOfArtProvider,
    VictoriaAndAlbertMuseumProvider,
)


def build_providers(http: HttpClient, rng: Optional[random.Random] = None) -> List[ArtProvider]:
    rng = rng or random.Random()
    return [provider_class(http, rng=rng) for provider_class in PROVIDER_CLASSES]
