import pytest

from storefinder.cancellation import CancellationToken, sleep_or_cancel
from storefinder.errors import SearchCancelledError


def test_cancelling_parent_cancels_children():
    parent = CancellationToken()
    child = parent.child()

    parent.cancel()

    assert child.cancelled
    with pytest.raises(SearchCancelledError):
        child.raise_if_cancelled()
    assert parent.child().cancelled


def test_cancelling_child_leaves_parent_running():
    parent = CancellationToken()
    first = parent.child()
    second = parent.child()

    first.cancel()

    assert first.cancelled
    assert not second.cancelled
    assert not parent.cancelled


def test_sleep_or_cancel():
    sleep_or_cancel(0.0, None)
    sleep_or_cancel(0.01, CancellationToken())

    token = CancellationToken()
    token.cancel()
    with pytest.raises(SearchCancelledError):
        sleep_or_cancel(5.0, token)
