from services.relevance import ScoringParams, score_chunk, tokenize

NO_BONUS = ScoringParams(short_chunk_bonus=0)


def test_tokenize_lowercases_and_drops_stop_words():
    assert tokenize("The MFA, for admin_accounts!") == ["mfa", "admin", "accounts"]


def test_tokenize_drops_single_characters():
    assert tokenize("x y zz") == ["zz"]


def test_tokenize_handles_arabic_stop_words():
    assert tokenize("سياسة في الأمن") == ["سياسة", "الأمن"]


def test_only_stop_words_tokenize_to_nothing():
    assert tokenize("the and of to") == []


def test_score_counts_each_occurrence_up_to_cap():
    assert score_chunk(["mfa"], "mfa " * 3, NO_BONUS) == 3
    assert score_chunk(["mfa"], "mfa " * 5, NO_BONUS) == 5
    assert score_chunk(["mfa"], "mfa " * 9, NO_BONUS) == 5


def test_score_matches_whole_words_only():
    assert score_chunk(["mfa"], "mfaa xmfa mfa", NO_BONUS) == 1


def test_repeated_query_tokens_count_each_time():
    assert score_chunk(["mfa", "mfa"], "mfa", NO_BONUS) == 2
    assert score_chunk(["mfa", "backup", "mfa"], "mfa backup", NO_BONUS) == 3


def test_no_match_scores_zero_even_for_short_chunks():
    assert score_chunk(["backup"], "Access control policy") == 0


def test_short_chunk_bonus_applies_only_below_threshold():
    assert score_chunk(["mfa"], "MFA required") == 2
    long_text = "MFA required. " + "x" * 900
    assert score_chunk(["mfa"], long_text) == 1


def test_scores_sum_across_tokens():
    text = "Access control policy requires MFA for all admin accounts reviewed quarterly."
    assert score_chunk(tokenize("MFA admin"), text) == 3
