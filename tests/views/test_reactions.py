from teamchat.views.reactions import group_reactions, has_reacted

from tests.factories import make_reaction


def test_groups_by_emoji_in_first_appearance_order():
    reactions = [
        make_reaction("👍", "bob"),
        make_reaction("❤️", "carol"),
        make_reaction("👍", "alice"),
    ]

    groups = group_reactions(reactions, current_user_id="u-alice")

    assert [g.emoji for g in groups] == ["👍", "❤️"]
    thumbs = groups[0]
    assert thumbs.count == 2
    assert thumbs.users == ("Bob", "Alice")
    assert thumbs.has_current_user is True
    assert groups[1].has_current_user is False


def test_grouping_is_idempotent():
    reactions = [
        make_reaction("🎉", "bob"),
        make_reaction("🎉", "carol"),
        make_reaction("👍", "bob"),
    ]
    once = group_reactions(reactions, "u-bob")
    assert group_reactions(once, "u-bob") == once


def test_user_counted_once_per_emoji():
    groups = group_reactions([make_reaction("👍", "bob"), make_reaction("👍", "bob")])
    assert groups[0].count == 1


def test_no_reactions():
    assert group_reactions(None) == []
    assert group_reactions([]) == []


def test_has_reacted():
    reactions = [make_reaction("👍", "bob")]
    assert has_reacted(reactions, "u-bob", "👍")
    assert not has_reacted(reactions, "u-bob", "❤️")
    assert not has_reacted(reactions, "u-alice", "👍")
