from app.interview.speech_metrics import analyze_speech, count_fillers, to_int_score, tokenize


def test_filler_heavy_short_answer_scenario():
    analysis = analyze_speech("um so basically I built a uh caching layer", 15)

    metrics = analysis.metrics
    assert metrics.word_count == 9
    assert metrics.filler_word_count == 3
    assert metrics.pause_count == 0
    assert metrics.words_per_minute == 36.0
    assert analysis.pace_penalty == 12
    assert analysis.short_answer_penalty == 22
    assert analysis.fluency_score == 57


def test_tokenize_keeps_apostrophes_and_hyphens():
    assert tokenize("I'm a self-taught dev, OK?") == ["i'm", "a", "self-taught", "dev", "ok"]


def test_you_know_phrase_counts_as_filler():
    tokens = tokenize("it was, you know, pretty like slow")
    assert count_fillers(tokens) == 2


def test_empty_transcript_is_maximally_disfluent():
    analysis = analyze_speech("", 30)

    assert analysis.metrics.word_count == 0
    assert analysis.metrics.disfluency_ratio == 1.0
    assert analysis.metrics.words_per_minute == 0.0
    assert analysis.metrics.pause_count == 2
    assert analysis.fluency_score == 44
    assert analysis.speech_flow_score == 25


def test_zero_duration_gives_zero_pace():
    analysis = analyze_speech("one two three", 0)
    assert analysis.metrics.words_per_minute == 0.0
    assert analysis.metrics.pause_count == 0


def test_pause_count_uses_twelve_second_intervals():
    assert analyze_speech("word " * 100, 60).metrics.pause_count == 4
    assert analyze_speech("word " * 100, 30).metrics.pause_count == 2
    assert analyze_speech("word " * 100, 5).metrics.pause_count == 0


def test_fluent_answer_keeps_high_scores():
    transcript = " ".join(["clear"] * 120)
    analysis = analyze_speech(transcript, 60)

    assert analysis.metrics.words_per_minute == 120.0
    assert analysis.pace_penalty == 0
    assert analysis.short_answer_penalty == 0
    assert analysis.fluency_score == 92
    assert analysis.speech_flow_score == 97


def test_fluency_never_increases_with_more_fillers():
    base = ["answer"] * 40
    previous = None
    for fillers in range(0, 41):
        words = ["um"] * fillers + base[fillers:]
        score = analyze_speech(" ".join(words), 20).fluency_score
        if previous is not None:
            assert score <= previous
        previous = score


def test_scores_stay_in_bounds():
    samples = [
        ("", 1),
        ("um " * 300, 180),
        ("word " * 2000, 10),
        ("a b c d e f g h", 179.5),
    ]
    for transcript, duration in samples:
        analysis = analyze_speech(transcript, duration)
        assert 0 <= analysis.fluency_score <= 100
        assert 0 <= analysis.speech_flow_score <= 100


def test_to_int_score_clamps_and_rounds_half_up():
    assert to_int_score(75.5) == 76
    assert to_int_score(-3) == 0
    assert to_int_score(140) == 100
    assert to_int_score("n/a") == 0
    assert to_int_score(float("nan")) == 0
