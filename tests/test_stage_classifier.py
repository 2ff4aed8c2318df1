import pytest

from revops.quarterly_rollup.constants import BUCKETS, BUCKET_OTHER
from revops.quarterly_rollup.stage_classifier import (
    classify,
    classify_many,
    forecast_bucket,
    normalize_stage,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Commit - Won", "won"),
        ("Best Case", "best"),
        ("", "pipeline"),
        ("closed lost - no budget", "lost"),
        ("Closed-Won!", "won"),
        ("CLOSED_LOSS", "lost"),
        ("Committed", "commit"),
        ("commit-verbal", "commit"),
        ("Stage 2: Discovery", "pipeline"),
        ("12345 !!", "pipeline"),
    ],
)
def test_classify_examples(label, expected):
    assert classify(label) == expected


def test_outcome_tokens_beat_forecast_tokens():
    assert classify("Best Case / Closed Won") == "won"
    assert classify("Commit (lost)") == "lost"
    assert classify("won and lost") == "won"


def test_keywords_match_whole_tokens_only():
    assert classify("Wonderful prospect") == "pipeline"
    assert classify("glossary review") == "pipeline"
    assert classify("lostwax foundry") == "pipeline"


def test_non_string_labels_are_pipeline():
    assert classify(None) == "pipeline"
    assert classify(float("nan")) == "pipeline"
    assert classify(42) == "pipeline"


def test_classify_is_total_and_never_other():
    labels = ["", " ", "won", "x-y-z", "Best!!", "commit", "LOSS", None, "ñandú", "\t\n"]
    for label in labels:
        bucket = classify(label)
        assert bucket in BUCKETS
        assert bucket != BUCKET_OTHER


def test_normalize_stage_pads_and_collapses():
    assert normalize_stage("Closed--Won!!") == " closed won "
    assert normalize_stage("") == "  "
    assert normalize_stage(None) == "  "


def test_forecast_bucket_ignores_outcome_tokens():
    assert forecast_bucket("Commit - Won") == "commit"
    assert forecast_bucket("Best Case (Lost)") == "best"
    assert forecast_bucket("Closed Won") == "pipeline"


def test_classify_many_counts_per_bucket():
    counts = classify_many(["Closed Won", "won", "Commit", "", "Best"])
    assert counts == {"won": 2, "commit": 1, "pipeline": 1, "best": 1}
