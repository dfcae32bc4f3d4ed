from app.models import AddonConfig, CatalogRequest, Credentials, EnrichedItem, FilterSignature


def _request(extra, **overrides):
    payload = {
        "content_type": "movie",
        "catalog_id": "random_movies",
        "extra": extra,
        "credentials": Credentials(tmdb_api_key="key"),
    }
    payload.update(overrides)
    return CatalogRequest(**payload)


def test_signature_ignores_key_order():
    first = FilterSignature.from_extra(
        "movie", {"genre": "Drama", "year": "2000-2004", "sort_by": "popularity.desc"}
    )
    second = FilterSignature.from_extra(
        "movie", {"sort_by": "popularity.desc", "year": "2000-2004", "genre": "Drama"}
    )

    assert first == second
    assert first.cache_fragment() == second.cache_fragment()


def test_partition_key_excludes_passthrough_and_presentation():
    signature = FilterSignature.from_extra(
        "series", {"rating": "6-8", "skip": "20", "with_genres": "18"}
    )

    assert signature.media_type == "tv"
    assert signature.partition_key() == ("", "", "6-8", "tv")
    assert signature.passthrough == (("with_genres", "18"),)


def test_cache_key_is_stable_and_tracks_extras():
    first = _request({"genre": "Drama", "skip": "0"})
    reordered = _request({"skip": "0", "genre": "Drama"})
    later_page = _request({"genre": "Drama", "skip": "20"})

    assert first.cache_key() == reordered.cache_key()
    assert first.cache_key() != later_page.cache_key()
    assert first.signature().partition_key() == later_page.signature().partition_key()


def test_request_skip_defaults_to_zero():
    assert _request({"skip": "oops"}).skip == 0
    assert _request({"skip": "40"}).skip == 40


def test_enriched_item_meta_and_cache_roundtrip():
    item = EnrichedItem(
        id="tmdb:550",
        tmdb_id=550,
        name="Fight Club",
        type="movie",
        poster="https://image.tmdb.org/t/p/w500/abc.jpg",
        banner="https://image.tmdb.org/t/p/original/back.jpg",
        release_info="1999-10-15",
        imdb_rating="8.4",
        genres=["Drama"],
    )

    meta = item.to_meta()
    assert meta["releaseInfo"] == "1999-10-15"
    assert meta["imdbRating"] == "8.4"
    assert meta["background"] == meta["banner"]
    assert "logo" not in meta

    restored = EnrichedItem.model_validate(item.model_dump(mode="json"))
    assert restored == item


def test_addon_config_from_path_aliases():
    config = AddonConfig.from_path(
        '{"language": "fr-FR", "tmdbApiKey": "abc", "rpdbApiKey": " ", "hideNoPoster": true}'
    )

    assert config.language == "fr-FR"
    assert config.tmdb_api_key == "abc"
    assert config.rpdb_api_key is None
    assert config.hide_no_poster is True
    assert AddonConfig.from_path(None) == AddonConfig()
