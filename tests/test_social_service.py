"""End-to-end behaviour of the presentation-facing service."""

from __future__ import annotations

import pytest

from social_graph.errors import ConflictError, InvalidRelationshipError, NotFoundError, UnauthorizedError
from social_graph.models.content import ActivityType, CollectionUpdate, FeedFilter
from social_graph.models.privacy import PrivacyLevel, ProfileVisibility
from social_graph.models.relationship import Follow, FollowRequest, FriendRequest, Friendship
from social_graph.notifications import NotificationEvent
from social_graph.store import SocialGraphService


def befriend(service: SocialGraphService, user_a: str, user_b: str) -> Friendship:
    request = service.send_friend_request(user_a, user_b)
    return service.accept_friend_request(user_b, request.id)


def test_friend_request_flow_notifies_both_sides(service: SocialGraphService, notifier):
    request = service.send_friend_request("alice", "bob")
    assert isinstance(request, FriendRequest)
    assert notifier.events_for("bob") == [NotificationEvent.FRIEND_REQUEST]

    service.send_friend_request("alice", "bob")
    assert notifier.events_for("bob") == [NotificationEvent.FRIEND_REQUEST]

    service.accept_friend_request("bob", request.id)
    assert notifier.events_for("alice") == [NotificationEvent.FRIEND_ACCEPTED]
    assert service.get_friends("alice") == ["bob"]
    assert service.get_friends("bob") == ["alice"]


def test_crossing_requests_become_friendship(service: SocialGraphService, notifier):
    service.send_friend_request("alice", "bob")

    result = service.send_friend_request("bob", "alice")

    assert isinstance(result, Friendship)
    assert notifier.events_for("alice") == [NotificationEvent.FRIEND_ACCEPTED]


def test_second_accept_is_not_found(service: SocialGraphService):
    request = service.send_friend_request("alice", "bob")
    service.accept_friend_request("bob", request.id)

    with pytest.raises(NotFoundError):
        service.accept_friend_request("bob", request.id)

    assert service.get_social_stats("alice", "alice").friend_count == 1


def test_friend_list_is_fresh_after_removal(service: SocialGraphService):
    befriend(service, "alice", "bob")
    assert service.get_friends("alice") == ["bob"]

    service.remove_friendship("bob", "alice")

    assert service.get_friends("alice") == []
    assert service.get_friends("bob") == []


def test_close_friends_listing(service: SocialGraphService):
    befriend(service, "alice", "bob")
    befriend(service, "alice", "carol")

    service.set_close_friend("alice", "bob")

    assert service.get_close_friends("alice") == ["bob"]
    assert service.get_close_friends("bob") == []
    with pytest.raises(NotFoundError):
        service.set_close_friend("alice", "dave")


def test_open_follow_notifies_followee(service: SocialGraphService, notifier):
    follow = service.follow("bob", "alice")

    assert isinstance(follow, Follow)
    assert service.get_followers("alice") == ["bob"]
    assert service.get_following("bob") == ["alice"]
    assert notifier.events_for("alice") == [NotificationEvent.NEW_FOLLOWER]

    service.follow("bob", "alice")
    assert notifier.events_for("alice") == [NotificationEvent.NEW_FOLLOWER]


def test_closed_profile_follow_requires_approval(service: SocialGraphService, notifier):
    service.update_privacy_settings("alice", {"open_follows": False})

    request = service.follow("bob", "alice")

    assert isinstance(request, FollowRequest)
    assert notifier.events_for("alice") == [NotificationEvent.FOLLOW_REQUEST]
    assert service.get_followers("alice") == []
    assert [item.id for item in service.pending_follow_requests("alice")] == [request.id]

    service.approve_follow_request("alice", request.id)

    assert service.get_followers("alice") == ["bob"]
    assert isinstance(service.follow("bob", "alice"), Follow)


def test_unfollow_and_deny(service: SocialGraphService):
    service.follow("bob", "alice")
    assert service.unfollow("bob", "alice")
    assert service.get_following("bob") == []

    service.update_privacy_settings("alice", {"open_follows": False})
    request = service.follow("bob", "alice")
    service.deny_follow_request("alice", request.id)
    assert service.pending_follow_requests("alice") == []


def test_block_scenario(service: SocialGraphService, notifier):
    befriend(service, "alice", "bob")
    service.follow("bob", "alice")
    notifier.sent.clear()

    service.block("alice", "bob")

    assert service.get_friends("alice") == []
    assert service.get_followers("alice") == []
    assert not service.can_view("bob", "alice", PrivacyLevel.PUBLIC)
    assert service.friendship_status("alice", "bob").state.value == "none"
    assert notifier.sent == []
    assert service.get_blocked_users("alice") == ["bob"]
    with pytest.raises(InvalidRelationshipError):
        service.send_friend_request("bob", "alice")

    service.unblock("alice", "bob")
    assert service.can_view("bob", "alice", PrivacyLevel.PUBLIC)


def test_notifier_failure_does_not_fail_mutation(service: SocialGraphService, notifier):
    notifier.fail = True

    request = service.send_friend_request("alice", "bob")

    assert service.friendship_status("bob", "alice").state.value == "pending_received"
    assert [item.id for item in service.pending_friend_requests("bob")] == [request.id]


def test_record_activity_uses_owner_defaults(service: SocialGraphService):
    service.update_privacy_settings("alice", {"checkin_visibility": PrivacyLevel.PUBLIC})

    checkin = service.record_activity("alice", ActivityType.CHECKIN, venue_id="venue-1")
    favorite = service.record_activity("alice", "favorite", venue_id="venue-2")
    explicit = service.record_activity("alice", ActivityType.CHECKIN, privacy_level="private")

    assert checkin.privacy_level is PrivacyLevel.PUBLIC
    assert favorite.privacy_level is PrivacyLevel.FRIENDS
    assert explicit.privacy_level is PrivacyLevel.PRIVATE


def test_get_activity_hides_invisible_entries(service: SocialGraphService):
    entry = service.record_activity("alice", ActivityType.CHECKIN, privacy_level=PrivacyLevel.FRIENDS)

    with pytest.raises(NotFoundError):
        service.get_activity("bob", entry.id)
    with pytest.raises(NotFoundError):
        service.get_activity("alice", "missing")

    befriend(service, "alice", "bob")
    assert service.get_activity("bob", entry.id).id == entry.id


def test_feed_through_service(service: SocialGraphService):
    service.follow("viewer", "owner")
    public = service.record_activity("owner", ActivityType.CHECKIN, privacy_level=PrivacyLevel.PUBLIC)
    service.record_activity("owner", ActivityType.CHECKIN, privacy_level=PrivacyLevel.FRIENDS)
    service.record_activity("owner", ActivityType.CHECKIN, privacy_level=PrivacyLevel.PRIVATE)

    page = service.get_feed("viewer", type_filter=FeedFilter.CHECKINS)

    assert [item.id for item in page.items] == [public.id]


def test_collection_lifecycle(service: SocialGraphService):
    collection = service.create_collection("alice", "Brunch spots", venue_ids=["v1"])
    assert collection.privacy_level is PrivacyLevel.FRIENDS

    with pytest.raises(NotFoundError):
        service.get_collection("bob", collection.id)
    assert service.get_user_collections("bob", "alice") == []

    befriend(service, "alice", "bob")
    assert service.get_collection("bob", collection.id).name == "Brunch spots"
    with pytest.raises(UnauthorizedError):
        service.update_collection("bob", collection.id, {"name": "Mine now"})

    updated = service.update_collection("alice", collection.id, CollectionUpdate(venue_ids=("v1", "v2")))
    assert updated.venue_ids == ("v1", "v2")
    assert [item.venue_ids for item in service.get_user_collections("bob", "alice")] == [("v1", "v2")]

    assert service.delete_collection("alice", collection.id)
    assert service.get_user_collections("alice", "alice") == []
    with pytest.raises(NotFoundError):
        service.delete_collection("alice", collection.id)


def test_collection_activity_appears_in_collections_feed(service: SocialGraphService):
    service.follow("bob", "alice")
    collection = service.create_collection("alice", "Rooftops", privacy_level=PrivacyLevel.PUBLIC)

    page = service.get_feed("bob", type_filter=FeedFilter.COLLECTIONS)

    assert [item.collection_id for item in page.items] == [collection.id]


def test_share_venue(service: SocialGraphService, notifier):
    shares = service.share_venue("alice", "venue-9", ["bob", "carol", "bob"], message="Try this")

    assert [share.to_user_id for share in shares] == ["bob", "carol"]
    assert notifier.events_for("bob") == [NotificationEvent.VENUE_SHARE]
    assert notifier.events_for("carol") == [NotificationEvent.VENUE_SHARE]
    assert [share.venue_id for share in service.received_shares("bob")] == ["venue-9"]
    assert len(service.sent_shares("alice")) == 2


@pytest.mark.parametrize("recipients", [[], ["alice"], ["bob", "alice"]])
def test_share_venue_rejects_invalid_recipients(service: SocialGraphService, recipients):
    with pytest.raises(InvalidRelationshipError):
        service.share_venue("alice", "venue-9", recipients)

    assert service.received_shares("bob") == []


def test_share_venue_to_blocked_user_is_rejected(service: SocialGraphService):
    service.block("bob", "alice")

    with pytest.raises(InvalidRelationshipError):
        service.share_venue("alice", "venue-9", ["bob"])


def test_received_shares_hide_blocked_senders(service: SocialGraphService):
    service.share_venue("alice", "venue-9", ["bob"])

    service.block("bob", "alice")

    assert service.received_shares("bob") == []


def test_mark_share_viewed_is_recipient_only(service: SocialGraphService):
    (share,) = service.share_venue("alice", "venue-9", ["bob"])

    with pytest.raises(NotFoundError):
        service.mark_share_viewed("alice", share.id)
    viewed = service.mark_share_viewed("bob", share.id)

    assert viewed.viewed is True
    assert viewed.viewed_time is not None


def test_social_stats_respect_profile_visibility(service: SocialGraphService):
    befriend(service, "alice", "bob")
    service.follow("carol", "alice")

    with pytest.raises(NotFoundError):
        service.get_social_stats("carol", "alice")
    stats = service.get_social_stats("bob", "alice")
    assert (stats.friend_count, stats.follower_count) == (1, 1)

    service.update_privacy_settings("alice", {"profile_visibility": ProfileVisibility.PUBLIC})
    assert service.get_social_stats("carol", "alice").follower_count == 1
    assert service.can_view_profile("carol", "alice")


def test_mutual_friends_and_status(service: SocialGraphService):
    befriend(service, "alice", "carol")
    befriend(service, "bob", "carol")
    service.send_friend_request("alice", "bob")

    assert service.get_mutual_friends("alice", "bob") == ["carol"]
    assert service.friendship_status("alice", "bob").state.value == "pending_sent"
    assert service.follow_status("alice", "bob").value == "not_following"

    service.cancel_friend_request("alice", service.pending_friend_requests("alice")[0].id)
    assert service.pending_friend_requests("bob") == []


def test_decline_friend_request(service: SocialGraphService):
    request = service.send_friend_request("alice", "bob")

    service.decline_friend_request("bob", request.id)

    assert service.get_friends("bob") == []
    assert service.pending_friend_requests("alice") == []


def test_follow_after_opening_profile_clears_pending_request(service: SocialGraphService):
    service.update_privacy_settings("alice", {"open_follows": False})
    service.follow("bob", "alice")
    service.update_privacy_settings("alice", {"open_follows": True})

    follow = service.follow("bob", "alice")

    assert isinstance(follow, Follow)
    assert service.pending_follow_requests("alice") == []
    assert service.follow_status("bob", "alice").value == "following"


def test_collection_description_can_be_cleared(service: SocialGraphService):
    collection = service.create_collection("alice", "Brunch spots", description="Weekend only")

    updated = service.update_collection("alice", collection.id, CollectionUpdate(description=None))

    assert updated.description is None
    assert updated.name == "Brunch spots"


@pytest.mark.parametrize("field", ["name", "privacy_level"])
def test_collection_required_fields_cannot_be_cleared(service: SocialGraphService, field: str):
    collection = service.create_collection("alice", "Brunch spots")

    with pytest.raises(ValueError):
        service.update_collection("alice", collection.id, {field: None})

    assert service.get_collection("alice", collection.id).name == "Brunch spots"


def test_collection_venue_membership(service: SocialGraphService):
    collection = service.create_collection("alice", "Rooftops", privacy_level=PrivacyLevel.PUBLIC)

    service.add_venue_to_collection("alice", collection.id, "v1")
    service.add_venue_to_collection("alice", collection.id, "v2")
    updated = service.add_venue_to_collection("alice", collection.id, "v0", position=0)

    assert updated.venue_ids == ("v0", "v1", "v2")
    assert updated.updated_time >= collection.updated_time
    assert service.get_collection_venues("bob", collection.id) == ["v0", "v1", "v2"]
    with pytest.raises(ConflictError):
        service.add_venue_to_collection("alice", collection.id, "v1")

    service.remove_venue_from_collection("alice", collection.id, "v1")
    assert service.get_collection_venues("alice", collection.id) == ["v0", "v2"]
    with pytest.raises(NotFoundError):
        service.remove_venue_from_collection("alice", collection.id, "v1")

    service.reorder_collection_venues("alice", collection.id, ["v2", "v0"])
    assert [item.venue_ids for item in service.get_user_collections("bob", "alice")] == [("v2", "v0")]
    with pytest.raises(ValueError):
        service.reorder_collection_venues("alice", collection.id, ["v2"])


def test_collection_venue_changes_are_owner_only(service: SocialGraphService):
    collection = service.create_collection("alice", "Rooftops", privacy_level=PrivacyLevel.PUBLIC)
    private = service.create_collection("alice", "Secret", privacy_level=PrivacyLevel.PRIVATE, venue_ids=["v9"])

    with pytest.raises(UnauthorizedError):
        service.add_venue_to_collection("bob", collection.id, "v1")
    with pytest.raises(NotFoundError):
        service.remove_venue_from_collection("bob", private.id, "v9")
    with pytest.raises(NotFoundError):
        service.get_collection_venues("bob", private.id)

    assert service.get_collection_venues("alice", private.id) == ["v9"]


def test_added_venue_appears_in_collections_feed(service: SocialGraphService):
    service.follow("bob", "alice")
    collection = service.create_collection("alice", "Rooftops", privacy_level=PrivacyLevel.PUBLIC)

    service.add_venue_to_collection("alice", collection.id, "v1")

    page = service.get_feed("bob", type_filter=FeedFilter.COLLECTIONS)
    assert {item.venue_id for item in page.items} == {"v1", None}


def test_venue_share_count(service: SocialGraphService):
    service.share_venue("alice", "venue-9", ["bob", "carol"])
    service.share_venue("dave", "venue-9", ["bob"])
    service.share_venue("alice", "venue-1", ["bob"])

    assert service.venue_share_count("venue-9") == 3
    assert service.venue_share_count("venue-unknown") == 0
