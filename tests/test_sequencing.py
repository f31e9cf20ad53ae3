from spendguard.sequencing import FetchSequencer


def test_tokens_increase_monotonically() -> None:
    sequencer = FetchSequencer()

    assert [sequencer.next_token() for _ in range(3)] == [1, 2, 3]


def test_only_latest_dispatch_is_accepted() -> None:
    sequencer = FetchSequencer()
    older = sequencer.next_token()
    newer = sequencer.next_token()

    assert not sequencer.accept(older)
    assert sequencer.accept(newer)
    assert sequencer.latest_accepted == newer


def test_late_result_after_newer_accept_is_discarded() -> None:
    sequencer = FetchSequencer()
    first = sequencer.next_token()
    second = sequencer.next_token()

    assert sequencer.accept(second)
    assert not sequencer.is_current(first)
    assert not sequencer.accept(first)
    assert sequencer.latest_accepted == second
