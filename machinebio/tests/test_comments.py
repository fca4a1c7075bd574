import pytest
from sqlalchemy import select

from machinebio.models import SpotComment
from machinebio.services.comment_service import CommentService
from machinebio.services.exceptions import ForbiddenError, NotFoundError, ValidationError
from machinebio.services.spot_service import SpotService


@pytest.fixture
def svc(async_db_session):
    return CommentService(async_db_session)


@pytest.mark.asyncio
async def test_threads_newest_first_with_replies_oldest_first(svc, make_user, make_spot):
    spotter = await make_user(username="spotter")
    fan = await make_user(username="fan")
    spot = await make_spot(spotter)

    first = await svc.add_comment(spot.id, fan.id, "  Is that a Supra?  ")
    second = await svc.add_comment(spot.id, spotter.id, "Guess first!")
    reply_a = await svc.add_comment(spot.id, spotter.id, "Maybe", parent_id=first.id)
    reply_b = await svc.add_comment(spot.id, fan.id, "Definitely", parent_id=first.id)

    threads = await svc.list_comments(spot.id)

    assert [t["id"] for t in threads] == [second.id, first.id]
    assert threads[1]["content"] == "Is that a Supra?"
    assert threads[1]["username"] == "fan"
    assert [r["id"] for r in threads[1]["replies"]] == [reply_a.id, reply_b.id]
    assert threads[1]["reply_count"] == 2
    assert threads[0]["replies"] == []
    assert threads[0]["reply_count"] == 0


@pytest.mark.asyncio
async def test_reply_to_a_reply_joins_the_thread(svc, make_user, make_spot):
    spotter = await make_user()
    spot = await make_spot(spotter)

    root = await svc.add_comment(spot.id, spotter.id, "Shot this in Belgrade")
    reply = await svc.add_comment(spot.id, spotter.id, "Near the fortress", parent_id=root.id)
    nested = await svc.add_comment(spot.id, spotter.id, "At night", parent_id=reply.id)

    assert nested.parent_id == root.id


@pytest.mark.asyncio
async def test_add_comment_validation(svc, make_user, make_spot):
    spotter = await make_user()
    spot = await make_spot(spotter)
    other_spot = await make_spot(spotter)
    elsewhere = await svc.add_comment(other_spot.id, spotter.id, "Different spot")

    with pytest.raises(ValidationError):
        await svc.add_comment(spot.id, spotter.id, "   ")
    with pytest.raises(NotFoundError):
        await svc.add_comment(spot.id, spotter.id, "Reply", parent_id=elsewhere.id)
    with pytest.raises(NotFoundError):
        await svc.add_comment(999, spotter.id, "Hello")
    with pytest.raises(NotFoundError):
        await svc.list_comments(999)


@pytest.mark.asyncio
async def test_delete_comment_by_author_takes_replies(svc, async_db_session, make_user, make_spot):
    spotter = await make_user()
    fan = await make_user()
    spot = await make_spot(spotter)
    root = await svc.add_comment(spot.id, fan.id, "Nice find")
    await svc.add_comment(spot.id, spotter.id, "Thanks", parent_id=root.id)

    await svc.delete_comment(spot.id, root.id, fan.id)

    assert await svc.list_comments(spot.id) == []
    remaining = (await async_db_session.execute(select(SpotComment))).scalars().all()
    assert remaining == []


@pytest.mark.asyncio
async def test_only_author_or_moderator_deletes_comment(svc, make_user, make_spot):
    spotter = await make_user()
    troll = await make_user()
    bystander = await make_user()
    moderator = await make_user(role="moderator")
    spot = await make_spot(spotter)
    comment = await svc.add_comment(spot.id, troll.id, "Fake")

    with pytest.raises(ForbiddenError):
        await svc.delete_comment(spot.id, comment.id, bystander.id, caller_role=bystander.role)
    with pytest.raises(ForbiddenError):
        # Owning the spot is not enough
        await svc.delete_comment(spot.id, comment.id, spotter.id, caller_role=spotter.role)

    await svc.delete_comment(spot.id, comment.id, moderator.id, caller_role=moderator.role)
    with pytest.raises(NotFoundError):
        await svc.delete_comment(spot.id, comment.id, moderator.id, caller_role=moderator.role)


@pytest.mark.asyncio
async def test_deleting_spot_removes_comments(svc, async_db_session, make_user, make_spot):
    spotter = await make_user()
    spot = await make_spot(spotter)
    root = await svc.add_comment(spot.id, spotter.id, "First")
    await svc.add_comment(spot.id, spotter.id, "Second", parent_id=root.id)

    await SpotService(async_db_session).delete_spot(spot.id, spotter.id)

    remaining = (await async_db_session.execute(select(SpotComment))).scalars().all()
    assert remaining == []


@pytest.mark.asyncio
async def test_comment_routes(async_client, make_user, make_spot, auth_headers):
    spotter = await make_user(username="spotter")
    fan = await make_user(username="fan")
    spot = await make_spot(spotter)

    resp = await async_client.post(f"/spots/{spot.id}/comments", json={"content": "Where?"})
    assert resp.status_code == 401

    resp = await async_client.post(
        f"/spots/{spot.id}/comments", json={"content": "Where?"}, headers=auth_headers(fan)
    )
    assert resp.status_code == 201
    comment = resp.json()["comment"]
    assert comment["username"] == "fan"

    resp = await async_client.post(
        f"/spots/{spot.id}/comments",
        json={"content": "Novi Sad", "parent_id": comment["id"]},
        headers=auth_headers(spotter),
    )
    assert resp.status_code == 201

    resp = await async_client.post(
        f"/spots/{spot.id}/comments", json={"content": "  "}, headers=auth_headers(fan)
    )
    assert resp.status_code == 400

    resp = await async_client.get(f"/spots/{spot.id}/comments")
    assert resp.status_code == 200
    threads = resp.json()["comments"]
    assert len(threads) == 1
    assert threads[0]["replies"][0]["content"] == "Novi Sad"

    resp = await async_client.delete(f"/spots/{spot.id}/comments/{comment['id']}", headers=auth_headers(spotter))
    assert resp.status_code == 403

    resp = await async_client.delete(f"/spots/{spot.id}/comments/{comment['id']}", headers=auth_headers(fan))
    assert resp.status_code == 204

    resp = await async_client.get("/spots/999/comments")
    assert resp.status_code == 404
