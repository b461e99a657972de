"""
Session feed: read() snapshots, watchers and unsubscribe.
"""

import logging

from cookie_battle.engine.actions import submit_bet
from cookie_battle.engine.feed import SessionFeed
from cookie_battle.engine.reducer import apply_action


def test_read_returns_a_copy(make_session):
    feed = SessionFeed(make_session())

    snapshot = feed.read()
    snapshot.teams["a"].resources = 0

    assert feed.read().teams["a"].resources == 100


def test_watchers_see_every_publish_until_unsubscribed(make_session):
    state = make_session()
    feed = SessionFeed(state)
    seen = []
    unsubscribe = feed.watch(lambda s: seen.append(sorted(s.bets)))

    state, _ = apply_action(state, submit_bet("a", 10, 10))
    feed.publish(state)
    unsubscribe()
    state, _ = apply_action(state, submit_bet("b", 10, 10))
    feed.publish(state)

    assert seen == [["a"]]
    assert sorted(feed.read().bets) == ["a", "b"]
    assert feed.watcher_count == 0


def test_failing_watcher_does_not_block_others(make_session, caplog):
    feed = SessionFeed(make_session())
    seen = []

    def broken(_):
        raise RuntimeError("socket closed")

    feed.watch(broken)
    feed.watch(lambda s: seen.append(s.status))

    with caplog.at_level(logging.WARNING, logger="cookie_battle.engine.feed"):
        feed.publish(make_session())

    assert seen == ["betting"]
    assert "watcher" in caplog.text
