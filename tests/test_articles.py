"""
Article API tests: the ``/api/v1`` JSON flow: listing (with pin ordering,
tag scoping and filters), create, show, update, pick-best and delete,
plus the author guard.

Each test creates the users, tags and articles it needs through the API.
"""
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.main import app

from conftest import async_session_test, auth, make_attachment


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _user(client: AsyncClient, username: str, is_admin: bool = False) -> int:
    resp = await client.post("/api/v1/users", json={
        "username": username,
        "email": f"{username}@example.com",
        "is_admin": is_admin,
    })
    assert resp.status_code == 201
    return resp.json()["id"]


async def _tag(client: AsyncClient, user_id: int, name: str) -> dict:
    resp = await client.post("/api/v1/tags", json={"name": name}, headers=auth(user_id))
    assert resp.status_code == 201
    return resp.json()


async def _article(client: AsyncClient, user_id: int, **fields) -> dict:
    payload = {"title": "An article", "content": "Body"}
    payload.update(fields)
    resp = await client.post("/api/v1/articles", json=payload, headers=auth(user_id))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _comment(client: AsyncClient, article_id: int, content: str, parent_id=None) -> dict:
    resp = await client.post(
        f"/api/v1/articles/{article_id}/comments",
        json={"content": content, "parent_id": parent_id},
    )
    assert resp.status_code == 201
    return resp.json()


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    data = resp.json()
    assert data["items"] == []
    assert data["total"] == 0
    assert data["page_size"] == 5


@pytest.mark.asyncio
async def test_list_puts_pinned_articles_first(async_client: AsyncClient):
    """Every pinned article precedes every unpinned one."""
    user_id = await _user(async_client, "pinner")
    await _article(async_client, user_id, title="Plain 1")
    await _article(async_client, user_id, title="Pinned 1", pin=True)
    await _article(async_client, user_id, title="Plain 2")
    await _article(async_client, user_id, title="Pinned 2", pin=True)

    resp = await async_client.get("/api/v1/articles?page_size=10")
    pins = [a["pin"] for a in resp.json()["items"]]
    assert pins == [True, True, False, False]


@pytest.mark.asyncio
async def test_list_secondary_order_breaks_pin_ties(async_client: AsyncClient):
    user_id = await _user(async_client, "sorter")
    for title in ("Bravo", "Alpha", "Charlie"):
        await _article(async_client, user_id, title=title)

    resp = await async_client.get("/api/v1/articles?sort_by=title&sort_order=asc")
    titles = [a["title"] for a in resp.json()["items"]]
    assert titles == ["Alpha", "Bravo", "Charlie"]


@pytest.mark.asyncio
async def test_list_page_size_capped_by_settings(async_client: AsyncClient):
    ok = await async_client.get(f"/api/v1/articles?page_size={settings.MAX_PAGE_SIZE}")
    assert ok.status_code == 200
    assert ok.json()["page_size"] == settings.MAX_PAGE_SIZE

    resp = await async_client.get(f"/api/v1/articles?page_size={settings.MAX_PAGE_SIZE + 1}")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_default_page_size_is_five(async_client: AsyncClient):
    user_id = await _user(async_client, "pager")
    for i in range(7):
        await _article(async_client, user_id, title=f"Article {i}")

    first = (await async_client.get("/api/v1/articles")).json()
    assert len(first["items"]) == 5
    assert first["total"] == 7
    assert first["pages"] == 2

    second = (await async_client.get("/api/v1/articles?page=2")).json()
    assert len(second["items"]) == 2


@pytest.mark.asyncio
async def test_list_by_tag_slug(async_client: AsyncClient):
    user_id = await _user(async_client, "tagger")
    python = await _tag(async_client, user_id, "Python")
    redis = await _tag(async_client, user_id, "Redis")
    await _article(async_client, user_id, title="Py", tags=[python["id"]])
    await _article(async_client, user_id, title="Both", tags=[python["id"], redis["id"]])
    await _article(async_client, user_id, title="None")

    resp = await async_client.get("/api/v1/tags/redis/articles")
    assert resp.status_code == 200
    assert [a["title"] for a in resp.json()["items"]] == ["Both"]

    resp = await async_client.get("/api/v1/tags/python/articles")
    assert resp.json()["total"] == 2


@pytest.mark.asyncio
async def test_list_unknown_tag_slug_returns_404(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/tags/missing/articles")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Tag not found"


@pytest.mark.asyncio
async def test_list_filters(async_client: AsyncClient):
    user_id = await _user(async_client, "filterer")
    quiet = await _article(async_client, user_id, title="Quiet question")
    answered = await _article(async_client, user_id, title="Answered question")
    comment = await _comment(async_client, answered["id"], "Try restarting")
    resp = await async_client.patch(
        f"/api/v1/articles/{answered['id']}/solution",
        json={"solution_id": comment["id"]},
        headers=auth(user_id),
    )
    assert resp.status_code == 204

    nocomment = (await async_client.get("/api/v1/articles?filter=nocomment")).json()
    assert [a["id"] for a in nocomment["items"]] == [quiet["id"]]

    notsolved = (await async_client.get("/api/v1/articles?filter=notsolved")).json()
    assert [a["id"] for a in notsolved["items"]] == [quiet["id"]]

    search = (await async_client.get("/api/v1/articles?q=answered")).json()
    assert [a["id"] for a in search["items"]] == [answered["id"]]


@pytest.mark.asyncio
async def test_list_rejects_unknown_filter(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles?filter=popular")
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Create + show
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_requires_identity(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/articles", json={"title": "T", "content": "C"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_and_get_article(async_client: AsyncClient):
    user_id = await _user(async_client, "writer")
    python = await _tag(async_client, user_id, "Python")
    testing = await _tag(async_client, user_id, "Testing")

    created = await _article(
        async_client, user_id,
        title="How do I test?",
        content="Details",
        notification=True,
        tags=[python["id"], testing["id"], python["id"]],
    )
    assert created["user_id"] == user_id
    assert created["notification"] is True
    assert created["solution"] is None

    resp = await async_client.get(f"/api/v1/articles/{created['id']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["article"]["id"] == created["id"]
    assert {t["id"] for t in body["article"]["tags"]} == {python["id"], testing["id"]}
    assert body["comments"] == []


@pytest.mark.asyncio
async def test_create_notification_defaults_to_false(async_client: AsyncClient):
    user_id = await _user(async_client, "quiet")
    created = await _article(async_client, user_id)
    assert created["notification"] is False


@pytest.mark.asyncio
async def test_create_with_unknown_tag_returns_422(async_client: AsyncClient):
    user_id = await _user(async_client, "badtag")
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "T", "content": "C", "tags": [999]},
        headers=auth(user_id),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"][0]["loc"] == ["body", "tags"]

    listing = (await async_client.get("/api/v1/articles")).json()
    assert listing["total"] == 0


@pytest.mark.asyncio
async def test_create_missing_title_returns_422(async_client: AsyncClient):
    user_id = await _user(async_client, "untitled")
    resp = await async_client.post(
        "/api/v1/articles", json={"content": "C"}, headers=auth(user_id)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_show_returns_threaded_comments_newest_first(async_client: AsyncClient):
    user_id = await _user(async_client, "threads")
    article = await _article(async_client, user_id)
    first = await _comment(async_client, article["id"], "first")
    second = await _comment(async_client, article["id"], "second")
    reply = await _comment(async_client, article["id"], "reply to first", parent_id=first["id"])

    body = (await async_client.get(f"/api/v1/articles/{article['id']}")).json()
    comments = body["comments"]
    assert [c["id"] for c in comments] == [second["id"], first["id"]]
    assert all(c["parent_id"] is None for c in comments)
    assert [r["id"] for r in comments[1]["replies"]] == [reply["id"]]
    # The article payload carries every live comment, replies included.
    assert len(body["article"]["comments"]) == 3


@pytest.mark.asyncio
async def test_get_article_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles/99999")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Article not found"


@pytest.mark.asyncio
async def test_api_show_does_not_count_views(async_client: AsyncClient):
    user_id = await _user(async_client, "apiviews")
    article = await _article(async_client, user_id)

    await async_client.get(f"/api/v1/articles/{article['id']}")
    body = (await async_client.get(f"/api/v1/articles/{article['id']}")).json()
    assert body["article"]["view_count"] == 0


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article(async_client: AsyncClient):
    user_id = await _user(async_client, "editor")
    article = await _article(async_client, user_id, title="Before", notification=True)

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}",
        json={"title": "After"},
        headers=auth(user_id),
    )
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["title"] == "After"
    assert updated["content"] == "Body"
    # notification is recomputed on every update and absent means False.
    assert updated["notification"] is False


@pytest.mark.asyncio
async def test_update_tags_replaced_not_appended(async_client: AsyncClient):
    user_id = await _user(async_client, "syncer")
    t1, t2, t3 = [await _tag(async_client, user_id, n) for n in ("One", "Two", "Three")]
    article = await _article(async_client, user_id, tags=[t1["id"], t2["id"]])

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}",
        json={"tags": [t2["id"], t3["id"]]},
        headers=auth(user_id),
    )
    assert {t["id"] for t in resp.json()["tags"]} == {t2["id"], t3["id"]}


@pytest.mark.asyncio
async def test_update_without_tags_key_keeps_tags(async_client: AsyncClient):
    user_id = await _user(async_client, "keeper")
    tag = await _tag(async_client, user_id, "Keep")
    article = await _article(async_client, user_id, tags=[tag["id"]])

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}",
        json={"content": "New body"},
        headers=auth(user_id),
    )
    assert [t["id"] for t in resp.json()["tags"]] == [tag["id"]]


@pytest.mark.asyncio
async def test_update_with_empty_tags_clears_them(async_client: AsyncClient):
    user_id = await _user(async_client, "clearer")
    tag = await _tag(async_client, user_id, "Gone")
    article = await _article(async_client, user_id, tags=[tag["id"]])

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}",
        json={"tags": []},
        headers=auth(user_id),
    )
    assert resp.json()["tags"] == []


@pytest.mark.asyncio
async def test_update_nonexistent_article(async_client: AsyncClient):
    user_id = await _user(async_client, "ghost")
    resp = await async_client.put(
        "/api/v1/articles/99999", json={"title": "Ghost"}, headers=auth(user_id)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_by_other_user_is_forbidden(async_client: AsyncClient):
    owner_id = await _user(async_client, "realowner")
    intruder_id = await _user(async_client, "intruder")
    article = await _article(async_client, owner_id, title="Mine")

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}",
        json={"title": "Yours now"},
        headers=auth(intruder_id),
    )
    assert resp.status_code == 403

    body = (await async_client.get(f"/api/v1/articles/{article['id']}")).json()
    assert body["article"]["title"] == "Mine"


@pytest.mark.asyncio
async def test_admin_may_update_any_article(async_client: AsyncClient):
    owner_id = await _user(async_client, "plainowner")
    admin_id = await _user(async_client, "admin", is_admin=True)
    article = await _article(async_client, owner_id)

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}",
        json={"pin": True},
        headers=auth(admin_id),
    )
    assert resp.status_code == 200
    assert resp.json()["pin"] is True


# ---------------------------------------------------------------------------
# Pick best
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_pick_best_sets_solution(async_client: AsyncClient):
    user_id = await _user(async_client, "asker")
    article = await _article(async_client, user_id)
    answer = await _comment(async_client, article["id"], "Use a context manager")

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}/solution",
        json={"solution_id": answer["id"]},
        headers=auth(user_id),
    )
    assert resp.status_code == 204
    assert resp.content == b""

    body = (await async_client.get(f"/api/v1/articles/{article['id']}")).json()
    assert body["article"]["solution_id"] == answer["id"]
    assert body["article"]["solution"]["content"] == "Use a context manager"


@pytest.mark.asyncio
async def test_pick_best_unknown_comment_returns_422(async_client: AsyncClient):
    user_id = await _user(async_client, "picky")
    article = await _article(async_client, user_id)

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}/solution",
        json={"solution_id": 424242},
        headers=auth(user_id),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"][0]["loc"] == ["body", "solution_id"]


@pytest.mark.asyncio
async def test_pick_best_requires_numeric_solution_id(async_client: AsyncClient):
    user_id = await _user(async_client, "numeric")
    article = await _article(async_client, user_id)

    for payload in ({}, {"solution_id": "abc"}):
        resp = await async_client.patch(
            f"/api/v1/articles/{article['id']}/solution",
            json=payload,
            headers=auth(user_id),
        )
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_pick_best_rejects_comment_of_another_article(async_client: AsyncClient):
    user_id = await _user(async_client, "crosser")
    article = await _article(async_client, user_id, title="Mine")
    other = await _article(async_client, user_id, title="Other")
    foreign = await _comment(async_client, other["id"], "elsewhere")

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}/solution",
        json={"solution_id": foreign["id"]},
        headers=auth(user_id),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_pick_best_by_other_user_is_forbidden(async_client: AsyncClient):
    owner_id = await _user(async_client, "qowner")
    other_id = await _user(async_client, "qother")
    article = await _article(async_client, owner_id)
    answer = await _comment(async_client, article["id"], "answer")

    resp = await async_client.patch(
        f"/api/v1/articles/{article['id']}/solution",
        json={"solution_id": answer["id"]},
        headers=auth(other_id),
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_article(async_client: AsyncClient):
    user_id = await _user(async_client, "deleter")
    article = await _article(async_client, user_id)
    await _comment(async_client, article["id"], "doomed")

    resp = await async_client.delete(f"/api/v1/articles/{article['id']}", headers=auth(user_id))
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/v1/articles/{article['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_nonexistent_article(async_client: AsyncClient):
    user_id = await _user(async_client, "nobody")
    resp = await async_client.delete("/api/v1/articles/99999", headers=auth(user_id))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_without_identity_returns_401(async_client: AsyncClient):
    user_id = await _user(async_client, "anon")
    article = await _article(async_client, user_id)
    resp = await async_client.delete(f"/api/v1/articles/{article['id']}")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_delete_by_other_user_is_forbidden(async_client: AsyncClient):
    owner_id = await _user(async_client, "downer")
    other_id = await _user(async_client, "dother")
    article = await _article(async_client, owner_id)

    resp = await async_client.delete(f"/api/v1/articles/{article['id']}", headers=auth(other_id))
    assert resp.status_code == 403
    assert (await async_client.get(f"/api/v1/articles/{article['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_delete_storage_failure_returns_500_and_keeps_records(
    async_client: AsyncClient, attachment_dir, monkeypatch
):
    user_id = await _user(async_client, "locked")
    article = await _article(async_client, user_id)
    await _comment(async_client, article["id"], "survives")
    async with async_session_test() as session:
        await make_attachment(session, attachment_dir, "locked.txt", article_id=article["id"])
        await session.commit()

    def refuse(self, missing_ok=False):
        raise PermissionError(f"cannot remove {self}")

    monkeypatch.setattr(Path, "unlink", refuse)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.delete(f"/api/v1/articles/{article['id']}", headers=auth(user_id))
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}

    body = (await async_client.get(f"/api/v1/articles/{article['id']}")).json()
    assert [a["name"] for a in body["article"]["attachments"]] == ["locked.txt"]
    assert [c["content"] for c in body["comments"]] == ["survives"]
    assert (attachment_dir / "locked.txt").exists()
