from sandbox.capper import NO_OUTPUT, TRUNCATION_MARKER, cap_output


def test_chunks_within_budget_are_unmodified() -> None:
    capped = cap_output(["hello\n", "warning\n"], 100)

    assert capped.output == "hello\nwarning\n"
    assert capped.truncated is False


def test_overflowing_chunk_is_cut_and_marked() -> None:
    capped = cap_output(["abcdef", "ghijkl"], 8)

    assert capped.output == "abcdefgh" + TRUNCATION_MARKER
    assert capped.truncated is True


def test_later_chunks_are_dropped_after_truncation() -> None:
    capped = cap_output(["x" * 20, "stderr text"], 10)

    assert capped.output == "x" * 10 + TRUNCATION_MARKER
    assert "stderr" not in capped.output


def test_exact_fit_is_not_truncated() -> None:
    capped = cap_output(["12345", "67890"], 10)

    assert capped.output == "1234567890"
    assert capped.truncated is False


def test_empty_input_yields_placeholder() -> None:
    assert cap_output([], 100).output == NO_OUTPUT
    assert cap_output(["", ""], 100).output == NO_OUTPUT
    assert cap_output(["", ""], 100).truncated is False


def test_output_bound_holds() -> None:
    for cap in (0, 1, 50, 4000):
        capped = cap_output(["a" * 3000, "b" * 3000], cap)
        assert len(capped.output) <= cap + len(TRUNCATION_MARKER)


def test_negative_budget_is_treated_as_zero() -> None:
    capped = cap_output(["abc"], -5)

    assert capped.output == TRUNCATION_MARKER
    assert capped.truncated is True


def test_budget_counts_characters_not_bytes() -> None:
    capped = cap_output(["é" * 10], 10)

    assert capped.output == "é" * 10
    assert capped.truncated is False
