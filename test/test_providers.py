import random

import pytest

from art_providers import (
    AIC_SEARCH_URL,
    CMA_ARTWORKS_URL,
    MET_OBJECT_URL,
    MET_SEARCH_URL,
    VAM_SEARCH_URL,
    ArtInstituteOfChicagoProvider,
    ArtworkNotFoundError,
    ClevelandMuseumOfArtProvider,
    MetropolitanMuseumOfArtProvider,
    ProviderError,
    VictoriaAndAlbertMuseumProvider,
    build_providers,
)
from http_client import TransportError
from security import SecurityError


class DummyHttp:
    """Answers get_json from a url -> payload table. Callables get the params, lists are consumed in order."""

    def __init__(self, responses) -> None:
        self.responses = responses
        self.calls = []

    def get_json(self, url, params=None, headers=None, cancel_event=None):
        self.calls.append((url, params, headers))
        answer = self.responses[url]
        if isinstance(answer, list):
            answer = answer.pop(0)
        if callable(answer):
            answer = answer(params)
        if isinstance(answer, Exception):
            raise answer
        return answer


def aic_record(**overrides):
    record = {
        "id": 27992,
        "title": "A Sunday on La Grande Jatte",
        "image_id": "2d484387-2509-5e8e-2c43-22f9981972eb",
        "artist_title": "Georges Seurat",
        "date_display": "1884",
        "medium_display": "Oil on canvas",
        "is_public_domain": True,
        "artwork_type_title": "Painting",
    }
    record.update(overrides)
    return record


def test_aic_picks_public_domain_painting() -> None:
    records = [
        aic_record(image_id="not-pd", is_public_domain=False),
        aic_record(image_id="a-sculpture", artwork_type_title="Sculpture"),
        aic_record(image_id=None),
        aic_record(),
    ]
    http = DummyHttp({AIC_SEARCH_URL: {"data": records}})
    artwork = ArtInstituteOfChicagoProvider(http, rng=random.Random(3)).fetch_one()

    assert artwork.id == "2d484387-2509-5e8e-2c43-22f9981972eb"
    assert artwork.image_url == (
        "https://www.artic.edu/iiif/2/2d484387-2509-5e8e-2c43-22f9981972eb/full/1686,/0/default.jpg"
    )
    assert artwork.artist == "Georges Seurat"
    assert artwork.provider_name == "Art Institute of Chicago"

    _, params, headers = http.calls[0]
    assert params["q"] == "painting"
    assert 1 <= params["page"] <= 99
    assert headers["AIC-User-Agent"]


def test_aic_download_headers_identify_client() -> None:
    headers = ArtInstituteOfChicagoProvider(DummyHttp({})).download_headers()
    assert headers["Referer"] == "https://www.artic.edu/"
    assert "AIC-User-Agent" in headers


def test_aic_sanitizes_image_id() -> None:
    http = DummyHttp({AIC_SEARCH_URL: {"data": [aic_record(image_id="../../etc/passwd")]}})
    artwork = ArtInstituteOfChicagoProvider(http, rng=random.Random(1)).fetch_one()
    assert artwork.id == "etcpasswd"
    assert "/../" not in artwork.image_url


def test_cleveland_uses_random_offset_and_web_image() -> None:
    def answer(params):
        if "skip" not in params:
            return {"info": {"total": 12}}
        assert 0 <= params["skip"] < 12
        return {
            "data": [{
                "id": 135382,
                "title": "The Large Plane Trees",
                "creators": [{"description": "Vincent van Gogh (Dutch, 1853-1890)"}],
                "creation_date": "1889",
                "technique": "oil on canvas",
                "images": {"web": {"url": "https://openaccess-cdn.clevelandart.org/1958.31/1958.31_web.jpg"}},
            }]
        }

    http = DummyHttp({CMA_ARTWORKS_URL: answer})
    artwork = ClevelandMuseumOfArtProvider(http, rng=random.Random(7)).fetch_one()

    assert artwork.id == "135382"
    assert artwork.artist.startswith("Vincent van Gogh")
    assert artwork.image_url.endswith("_web.jpg")
    assert len(http.calls) == 2


def test_cleveland_empty_catalog_fails_after_retries() -> None:
    http = DummyHttp({CMA_ARTWORKS_URL: {"info": {"total": 0}}})
    with pytest.raises(ArtworkNotFoundError):
        ClevelandMuseumOfArtProvider(http, rng=random.Random(1), attempts=3).fetch_one()
    assert len(http.calls) == 3


def test_met_falls_back_to_small_image() -> None:
    http = DummyHttp({
        MET_SEARCH_URL: {"objectIDs": [436535]},
        MET_OBJECT_URL.format(object_id="436535"): {
            "title": "Wheat Field with Cypresses",
            "artistDisplayName": "Vincent van Gogh",
            "objectDate": "1889",
            "medium": "Oil on canvas",
            "primaryImage": "",
            "primaryImageSmall": "https://images.metmuseum.org/small.jpg",
        },
    })
    artwork = MetropolitanMuseumOfArtProvider(http, rng=random.Random(1)).fetch_one()
    assert artwork.id == "436535"
    assert artwork.image_url == "https://images.metmuseum.org/small.jpg"


def test_met_object_id_is_sanitized_before_use_in_url() -> None:
    http = DummyHttp({
        MET_SEARCH_URL: {"objectIDs": ["12/../34"]},
        MET_OBJECT_URL.format(object_id="1234"): {"primaryImage": "https://images.metmuseum.org/a.jpg"},
    })
    artwork = MetropolitanMuseumOfArtProvider(http, rng=random.Random(1)).fetch_one()
    assert artwork.id == "1234"
    assert artwork.title == "Unknown Title"
    assert artwork.artist == "Unknown Artist"


def test_plain_http_image_url_is_a_security_error() -> None:
    http = DummyHttp({
        MET_SEARCH_URL: {"objectIDs": [1]},
        MET_OBJECT_URL.format(object_id="1"): {"primaryImage": "http://images.metmuseum.org/a.jpg"},
    })
    with pytest.raises(SecurityError):
        MetropolitanMuseumOfArtProvider(http, rng=random.Random(1)).fetch_one()
    assert len(http.calls) == 2


def test_vam_builds_framemark_url() -> None:
    http = DummyHttp({VAM_SEARCH_URL: {"records": [{
        "systemNumber": "O81598",
        "_primaryTitle": "The Hay Wain",
        "_primaryMaker": {"name": "John Constable"},
        "_primaryDate": "1821",
        "_primaryImageId": "2006AM6765",
    }]}})
    artwork = VictoriaAndAlbertMuseumProvider(http, rng=random.Random(1)).fetch_one()

    assert artwork.id == "O81598"
    assert artwork.image_url == "https://framemark.vam.ac.uk/collections/2006AM6765/full/max/0/default.jpg"
    _, params, _ = http.calls[0]
    assert params["q_object_name"] == "painting"
    assert 1 <= params["page"] <= 29


def test_vam_image_id_from_thumbnail() -> None:
    record = {"_images": {"_primary_thumbnail": "https://framemark.vam.ac.uk/collections/2013GU2911/full/!100,100/0/default.jpg"}}
    assert VictoriaAndAlbertMuseumProvider._image_id(record) == "2013GU2911"
    assert VictoriaAndAlbertMuseumProvider._image_id({}) == ""


def test_fetch_one_retries_transient_failures() -> None:
    http = DummyHttp({AIC_SEARCH_URL: [
        TransportError("timeout"),
        {"error": "rate limited"},
        {"data": [aic_record()]},
    ]})
    artwork = ArtInstituteOfChicagoProvider(http, rng=random.Random(1), attempts=3).fetch_one()
    assert artwork.title == "A Sunday on La Grande Jatte"
    assert len(http.calls) == 3


def test_api_error_payload_is_a_provider_error() -> None:
    http = DummyHttp({VAM_SEARCH_URL: {"error": "bad request"}})
    with pytest.raises(ProviderError):
        VictoriaAndAlbertMuseumProvider(http, rng=random.Random(1), attempts=1).fetch_one()


def test_build_providers_registers_all_catalogs() -> None:
    names = [provider.name for provider in build_providers(DummyHttp({}))]
    assert names == [
        "Art Institute of Chicago",
        "Cleveland Museum of Art",
        "Metropolitan Museum of Art",
        "Victoria and Albert Museum",
    ]
