"""Tests for the pipeline value types."""

from __future__ import annotations

from harvest.models import (
    AssetOutcome,
    AssetStatus,
    BatchStats,
    ExtractionResult,
    ItemReport,
    ItemState,
    normalize_publication_status,
)


def test_extraction_result_accepts_camel_case_payloads() -> None:
    """AI answers use camelCase keys; they should validate into the model."""

    result = ExtractionResult.model_validate(
        {
            "title": "  Vinland   Saga ",
            "alternativeTitles": ["Vinland Saga", "ヴィンランド・サガ", "ヴィンランド・サガ"],
            "genres": ["Action", "action", "Drama"],
            "chapters": "214",
            "rating": "8.9",
            "coverImage": "https://example.com/cover.jpg",
        }
    )

    assert result.title == "Vinland Saga"
    assert result.alternative_titles == ["ヴィンランド・サガ"]
    assert result.genres == ["Action", "Drama"]
    assert result.chapters == 214
    assert result.rating == 8.9
    assert result.cover_image == "https://example.com/cover.jpg"


def test_extraction_result_discards_meaningless_numbers() -> None:
    result = ExtractionResult(title="X", chapters=0, rating=0, volumes=-2)

    assert result.chapters is None
    assert result.rating is None
    assert result.volumes is None
    assert ExtractionResult(rating=42).rating == 10.0


def test_translatable_fields_and_creators() -> None:
    result = ExtractionResult(title="Berserk", author="Miura Kentarou", artist="Miura Kentarou")

    assert set(result.translatable_fields()) == {
        "title",
        "alternativeTitles",
        "synopsis",
        "genres",
        "author",
        "artist",
    }
    assert result.creators() == [("Miura Kentarou", "author"), ("Miura Kentarou", "artist")]
    assert ExtractionResult(source_url="https://x.test").has_title() is False


def test_publication_status_is_normalised() -> None:
    assert normalize_publication_status("Publishing") == "ongoing"
    assert normalize_publication_status("Finished") == "completed"
    assert normalize_publication_status("Completo") == "completed"
    assert normalize_publication_status("On Hiatus") == "hiatus"
    assert normalize_publication_status("Teaser") == "teaser"
    assert normalize_publication_status("  ") is None


def test_batch_stats_counts_outcomes() -> None:
    stats = BatchStats(total=4)
    stats.record(
        ItemReport(
            input="a",
            state=ItemState.DONE,
            result="created",
            asset=AssetOutcome(AssetStatus.ACQUIRED, filename="1.jpg"),
        )
    )
    stats.record(ItemReport(input="b", state=ItemState.DONE, result="unchanged"))
    stats.record(ItemReport(input="c", state=ItemState.FAILED, result="skipped"))
    stats.record(ItemReport(input="d", state=ItemState.FAILED, result="errored"))

    assert stats.attempted == 4
    assert stats.succeeded == 2
    assert stats.as_dict()["assets_acquired"] == 1
    assert "Skipped (no title): 1" in stats.summary_lines()
