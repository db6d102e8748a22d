"""Tests for the feed engine: aggregates, toggles, ownership rules and cascades."""

import pytest

from socialgraph.errors import Forbidden, InvalidArgument, NotFound
from socialgraph.models import Comment, Like, Post
from socialgraph.services.feed import FeedEngine
from socialgraph.services.indexes import index_layer
from socialgraph.services.relationships import relationship_service


@pytest.fixture
def friends_feed():
    return FeedEngine(friends_only=True)


@pytest.fixture
def open_feed():
    return FeedEngine(friends_only=False)


@pytest.fixture
def pair(db, make_profile, befriend):
    """Users 1 and 2 are friends; user 3 is a stranger to both."""
    make_profile(1)
    make_profile(2)
    make_profile(3)
    befriend(1, 2)


class TestPosts:
    def test_create_post_view(self, db, open_feed, make_profile):
        make_profile(1, name="Ines", handle="ines")
        view = open_feed.create_post(db, 1, "  first post  ", image="blob://img")

        assert view.content == "first post"
        assert view.image == "blob://img"
        assert view.author.handle == "ines"
        assert (view.likes_count, view.comments_count, view.is_liked, view.is_owner) == (0, 0, False, True)

    @pytest.mark.parametrize("content", ["", "   ", "x" * 2001])
    def test_post_content_is_validated(self, db, open_feed, content):
        with pytest.raises(InvalidArgument):
            open_feed.create_post(db, 1, content)

    def test_author_without_profile(self, db, open_feed):
        view = open_feed.create_post(db, 5, "anonymous")
        assert view.author.user_id == 5
        assert view.author.handle is None

    def test_friend_scenario(self, db, friends_feed, make_profile):
        make_profile(1)
        make_profile(2)
        request = relationship_service.send_request(db, 1, 2, "hi")
        relationship_service.accept_request(db, 2, request.id)
        mine = friends_feed.create_post(db, 1, "from one")
        theirs = friends_feed.create_post(db, 2, "from two")

        for viewer, other_post in ((1, theirs), (2, mine)):
            items = {p.id: p for p in friends_feed.list_posts(db, viewer).items}
            assert items[other_post.id].is_owner is False
            assert items[other_post.id].is_liked is False

        assert friends_feed.toggle_like(db, 1, theirs.id) is True
        view = {p.id: p for p in friends_feed.list_posts(db, 1).items}[theirs.id]
        assert view.is_liked is True
        assert view.likes_count == 1

    def test_get_missing_post(self, db, open_feed):
        with pytest.raises(NotFound):
            open_feed.get_post(db, 1, 999)


class TestAggregates:
    def test_counts_match_records(self, db, open_feed):
        post = open_feed.create_post(db, 1, "popular")
        for user_id in (2, 3, 4):
            open_feed.toggle_like(db, user_id, post.id)
        for user_id in (2, 2, 5, 1):
            open_feed.add_comment(db, user_id, post.id, f"comment by {user_id}")

        view = open_feed.get_post(db, 4, post.id)
        assert view.likes_count == 3
        assert view.comments_count == 4
        assert view.is_liked is True
        assert open_feed.get_post(db, 5, post.id).is_liked is False

    def test_toggle_alternates_and_never_duplicates(self, db, open_feed):
        post = open_feed.create_post(db, 1, "toggle me")

        states = [open_feed.toggle_like(db, 2, post.id) for _ in range(5)]

        assert states == [True, False, True, False, True]
        assert index_layer.count(db, "likes_by_pair", (2, post.id)) == 1
        assert open_feed.get_post(db, 2, post.id).likes_count == 1

    def test_delete_post_cascades(self, db, open_feed):
        post = open_feed.create_post(db, 1, "doomed")
        other = open_feed.create_post(db, 1, "survivor")
        for user_id in (2, 3):
            open_feed.toggle_like(db, user_id, post.id)
            open_feed.add_comment(db, user_id, post.id, "bye")
        open_feed.toggle_like(db, 2, other.id)

        open_feed.delete_post(db, 1, post.id)

        assert db.get(Post, post.id) is None
        assert index_layer.count(db, "likes_by_post", (post.id,)) == 0
        assert index_layer.count(db, "comments_by_post", (post.id,)) == 0
        assert db.query(Like).count() == 1
        assert db.query(Comment).count() == 0

    def test_only_owner_deletes_post(self, db, open_feed):
        post = open_feed.create_post(db, 1, "mine")

        with pytest.raises(Forbidden):
            open_feed.delete_post(db, 2, post.id)
        with pytest.raises(NotFound):
            open_feed.delete_post(db, 1, post.id + 1)


class TestComments:
    def test_comment_content_is_validated(self, db, open_feed):
        post = open_feed.create_post(db, 1, "p")
        with pytest.raises(InvalidArgument):
            open_feed.add_comment(db, 2, post.id, " ")
        with pytest.raises(InvalidArgument):
            open_feed.add_comment(db, 2, post.id, "y" * 501)

    def test_comment_on_missing_post(self, db, open_feed):
        with pytest.raises(NotFound):
            open_feed.add_comment(db, 1, 404, "hello?")

    @pytest.mark.parametrize("deleter", [2, 1])
    def test_author_or_post_owner_can_delete(self, db, open_feed, deleter):
        post = open_feed.create_post(db, 1, "p")
        comment = open_feed.add_comment(db, 2, post.id, "c")

        open_feed.delete_comment(db, deleter, comment.id)

        assert open_feed.get_post(db, 1, post.id).comments_count == 0

    def test_others_cannot_delete(self, db, open_feed):
        post = open_feed.create_post(db, 1, "p")
        comment = open_feed.add_comment(db, 2, post.id, "c")

        with pytest.raises(Forbidden):
            open_feed.delete_comment(db, 3, comment.id)
        with pytest.raises(NotFound):
            open_feed.delete_comment(db, 1, comment.id + 100)

    def test_list_comments_oldest_first(self, db, open_feed):
        post = open_feed.create_post(db, 1, "p")
        created = [open_feed.add_comment(db, user_id, post.id, f"c{user_id}") for user_id in (3, 1, 2)]

        first = open_feed.list_comments(db, 1, post.id, page_size=2)
        rest = open_feed.list_comments(db, 1, post.id, cursor=first.next_cursor, page_size=2)

        assert [c.id for c in first.items + rest.items] == [c.id for c in created]
        assert [c.is_owner for c in first.items] == [False, True]
        assert rest.next_cursor is None

    def test_list_likes_newest_first(self, db, open_feed):
        post = open_feed.create_post(db, 1, "p")
        for user_id in (4, 5, 6):
            open_feed.toggle_like(db, user_id, post.id)

        assert [like.user_id for like in open_feed.list_likes(db, 1, post.id).items] == [6, 5, 4]


class TestVisibility:
    def test_feed_shows_self_and_friends_only(self, db, friends_feed, pair):
        own = friends_feed.create_post(db, 1, "own")
        friend = friends_feed.create_post(db, 2, "friend")
        friends_feed.create_post(db, 3, "stranger")

        assert [p.id for p in friends_feed.list_posts(db, 1).items] == [friend.id, own.id]

    def test_strangers_cannot_interact(self, db, friends_feed, pair):
        post = friends_feed.create_post(db, 2, "friends only")

        with pytest.raises(Forbidden):
            friends_feed.toggle_like(db, 3, post.id)
        with pytest.raises(Forbidden):
            friends_feed.add_comment(db, 3, post.id, "hey")
        with pytest.raises(Forbidden):
            friends_feed.get_post(db, 3, post.id)
        with pytest.raises(Forbidden):
            friends_feed.list_comments(db, 3, post.id)
        with pytest.raises(Forbidden):
            friends_feed.list_posts(db, 3, owner=2)

        assert friends_feed.toggle_like(db, 1, post.id) is True

    def test_open_feed_shows_everyone_except_blocked(self, db, open_feed, pair):
        posts = [open_feed.create_post(db, user_id, f"by {user_id}") for user_id in (1, 2, 3)]
        relationship_service.block(db, 3, 1)

        assert [p.user_id for p in open_feed.list_posts(db, 1).items] == [2, 1]
        with pytest.raises(NotFound):
            open_feed.get_post(db, 1, posts[2].id)
        with pytest.raises(NotFound):
            open_feed.list_posts(db, 3, owner=1)

    def test_owner_filter(self, db, friends_feed, pair):
        friends_feed.create_post(db, 1, "one")
        a = friends_feed.create_post(db, 2, "two a")
        b = friends_feed.create_post(db, 2, "two b")

        assert [p.id for p in friends_feed.list_posts(db, 1, owner=2).items] == [b.id, a.id]

    def test_feed_pagination(self, db, friends_feed, pair):
        posts = [friends_feed.create_post(db, user_id, str(i)) for i, user_id in enumerate((1, 3, 2, 3, 1, 2))]
        visible = [p.id for p in reversed(posts) if p.user_id != 3]

        seen, cursor = [], None
        while True:
            page = friends_feed.list_posts(db, 1, cursor=cursor, page_size=2)
            seen += [p.id for p in page.items]
            cursor = page.next_cursor
            if cursor is None:
                break

        assert seen == visible

    def test_page_size_bounds(self, db, friends_feed):
        with pytest.raises(InvalidArgument):
            friends_feed.list_posts(db, 1, page_size=0)
