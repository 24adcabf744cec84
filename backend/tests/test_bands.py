import pytest

from ielts_portal.scoring.bands import (
    LISTENING_READING_BANDS,
    ScoringError,
    WritingCriteria,
    apply_ielts_rounding,
    calculate_listening_band,
    calculate_overall_band,
    calculate_reading_band,
    calculate_writing_band,
    combine_writing_task_bands,
    get_band_description,
)


def test_table_covers_every_raw_score_once():
    raws = [raw for raw, _ in LISTENING_READING_BANDS]
    assert sorted(raws) == list(range(0, 41))


def test_table_is_monotonic_in_half_bands():
    ordered = sorted(LISTENING_READING_BANDS)
    bands = [band for _, band in ordered]
    assert bands == sorted(bands)
    assert all((band * 2).is_integer() for band in bands)


@pytest.mark.parametrize(
    "correct, band",
    [(40, 9.0), (39, 8.5), (35, 6.5), (34, 6.0), (32, 6.0), (30, 5.5), (23, 4.5), (13, 2.5), (1, 0.5), (0, 0.0)],
)
def test_reading_and_listening_lookup(correct, band):
    assert calculate_reading_band(correct) == band
    assert calculate_listening_band(correct) == band


@pytest.mark.parametrize("correct", [-1, 41, 100, 12.5, None, True])
def test_out_of_table_counts_give_zero(correct):
    assert calculate_reading_band(correct) == 0.0


@pytest.mark.parametrize(
    "score, expected",
    [
        (6.0, 6.0),
        (6.125, 6.0),
        (6.24, 6.0),
        (6.25, 6.5),
        (6.5, 6.5),
        (6.625, 6.5),
        (6.74, 6.5),
        (6.75, 7.0),
        (6.875, 7.0),
        (0.0, 0.0),
        (8.875, 9.0),
    ],
)
def test_ielts_rounding(score, expected):
    assert apply_ielts_rounding(score) == expected


def test_writing_band_averages_and_rounds():
    criteria = WritingCriteria(task_achievement=6, coherence_cohesion=6, lexical_resource=6.5, grammar_accuracy=6.5)
    # 6.25 goes up to the half band
    assert calculate_writing_band(criteria) == 6.5
    assert calculate_writing_band(
        {"task_achievement": 7, "coherence_cohesion": 7, "lexical_resource": 7, "grammar_accuracy": 6}
    ) == 7.0


def test_writing_band_rejects_bad_criteria():
    with pytest.raises(ScoringError):
        calculate_writing_band({"task_achievement": 7, "coherence_cohesion": 7, "lexical_resource": 7})
    with pytest.raises(ScoringError):
        calculate_writing_band({"task_achievement": 10, "coherence_cohesion": 7, "lexical_resource": 7, "grammar_accuracy": 7})


def test_overall_band_rounding_edges():
    # 6.25 -> 6.5, 6.75 -> 7.0, 6.125 -> 6.0
    assert calculate_overall_band(6.5, 6.5, 5.0, 7.0) == 6.5
    assert calculate_overall_band(6.5, 6.5, 7.0, 7.0) == 7.0
    assert calculate_overall_band(6.0, 6.0, 6.0, 6.5) == 6.0


def test_overall_band_skips_missing_modules():
    assert calculate_overall_band(listening=6.0, reading=7.0) == 6.5
    assert calculate_overall_band(reading=5.5) == 5.5
    assert calculate_overall_band() == 0.0
    # a real zero still counts
    assert calculate_overall_band(listening=0.0, reading=7.0) == 3.5


def test_overall_band_rejects_out_of_range():
    with pytest.raises(ScoringError):
        calculate_overall_band(listening=9.5)


def test_writing_task_weighting():
    # (6 + 2*7) / 3 = 6.67 -> 6.5
    assert combine_writing_task_bands(6.0, 7.0) == 6.5
    # (5 + 2*7) / 3 = 6.33 -> 6.5
    assert combine_writing_task_bands(5.0, 7.0) == 6.5
    # (7 + 2*6) / 3 = 6.33 -> 6.5
    assert combine_writing_task_bands(7.0, 6.0) == 6.5
    # (5.5 + 2*5) / 3 = 5.17 -> 5.0
    assert combine_writing_task_bands(5.5, 5.0) == 5.0
    assert combine_writing_task_bands(6.0, None) == 6.0
    assert combine_writing_task_bands(None, 7.5) == 7.5
    assert combine_writing_task_bands(None, None) is None
    with pytest.raises(ScoringError):
        combine_writing_task_bands(-1, 6)


@pytest.mark.parametrize(
    "band, label",
    [(9.0, "Expert User"), (8.5, "Very Good User"), (7.0, "Good User"), (6.5, "Competent User"),
     (5.0, "Modest User"), (4.5, "Limited User"), (3.0, "Extremely Limited User"),
     (2.0, "Intermittent User"), (1.0, "Non User"), (0.5, "Did not attempt"), (0.0, "Did not attempt")],
)
def test_band_descriptions(band, label):
    assert get_band_description(band) == label
