"""Social routes — HTTP tests over the relational store (SQLite).

Tests cover:
    - POST/GET/DELETE /api/v1/social/posts with identity headers
    - comments, threaded replies and comment deletion
    - reactions (set, replace, remove) and poll votes/results
    - error envelope: 400 validation, 403 organization mismatch, 404 missing
    - error envelope echoes the caller's correlation id
    - dry-run validation endpoint
"""

from uuid import uuid4

POSTS = "/api/v1/social/posts"


async def _create(client, as_user, user_id=1, **body):
    payload = {"content": "Hello from the API"}
    payload.update(body)
    response = await client.post(POSTS, json=payload, headers=as_user(user_id))
    assert response.status_code == 201, response.text
    return response.json()


# ─── Posts ───────────────────────────────────────────────────────

async def test_create_and_get_post(client, as_user):
    created = await _create(client, as_user, content="Hi @bob", tags=["intro"])

    assert created["author_name"] == "Alice Silva"
    assert created["type"] == "text"
    assert created["mentions"] == [
        {"user_id": 2, "username": "bob", "name": "Bob Costa"},
    ]

    response = await client.get(f"{POSTS}/{created['id']}", headers=as_user(2))
    assert response.status_code == 200
    assert response.json()["views_count"] == 1


async def test_missing_identity_headers_rejected(client):
    response = await client.post(POSTS, json={"content": "anon"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_create_post_validation_error(client, as_user):
    response = await client.post(
        POSTS, json={"content": "x" * 2001}, headers=as_user(1),
    )
    assert response.status_code == 400
    assert response.json()["error"]["details"][0]["field"] == "body.content"


async def test_poll_without_options_rejected(client, as_user):
    response = await client.post(
        POSTS, json={"content": "Vote", "type": "poll"}, headers=as_user(1),
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"] == "Polls must have at least 2 options"


async def test_author_from_other_org_rejected(client, as_user):
    response = await client.post(
        POSTS, json={"content": "Sneaky"}, headers=as_user(4, organization_id=1),
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ORGANIZATION_MISMATCH"


async def test_feed_is_organization_scoped(client, as_user):
    await _create(client, as_user, content="Acme news", tags=["news"])
    await _create(client, as_user, user_id=2, content="Sales update")
    foreign = await client.post(
        POSTS, json={"content": "Globex"}, headers=as_user(4, organization_id=2),
    )
    assert foreign.status_code == 201

    response = await client.get(POSTS, headers=as_user(3))
    body = response.json()
    assert response.status_code == 200
    assert {p["content"] for p in body["posts"]} == {"Acme news", "Sales update"}
    assert body["limit"] == 20
    assert body["skip"] == 0

    filtered = await client.get(
        POSTS, params={"tags": "news", "limit": 5}, headers=as_user(3),
    )
    assert [p["content"] for p in filtered.json()["posts"]] == ["Acme news"]


async def test_get_post_from_other_org_forbidden(client, as_user):
    created = await _create(client, as_user)
    response = await client.get(
        f"{POSTS}/{created['id']}", headers=as_user(4, organization_id=2),
    )
    assert response.status_code == 403


async def test_get_unknown_post_404(client, as_user):
    response = await client.get(f"{POSTS}/{uuid4()}", headers=as_user(1))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


async def test_error_envelope_echoes_correlation_id(client, as_user):
    headers = as_user(1, **{"X-Correlation-Id": "req-77"})
    missing = await client.get(f"{POSTS}/{uuid4()}", headers=headers)
    invalid = await client.post(POSTS, json={"content": ""}, headers=headers)

    assert missing.json()["error"]["correlation_id"] == "req-77"
    assert invalid.status_code == 400
    assert invalid.json()["error"]["correlation_id"] == "req-77"
    plain = await client.get(f"{POSTS}/{uuid4()}", headers=as_user(1))
    assert "correlation_id" not in plain.json()["error"]


async def test_delete_post(client, as_user):
    created = await _create(client, as_user)
    url = f"{POSTS}/{created['id']}"

    denied = await client.delete(url, headers=as_user(2))
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "PERMISSION_DENIED"

    response = await client.request(
        "DELETE", url, json={"reason": "duplicate"}, headers=as_user(3),
    )
    assert response.status_code == 200
    assert response.json() == {"deleted": True, "post_id": created["id"]}
    assert (await client.get(url, headers=as_user(1))).status_code == 404


# ─── Comments ────────────────────────────────────────────────────

async def test_comments_and_replies(client, as_user):
    created = await _create(client, as_user)
    url = f"{POSTS}/{created['id']}/comments"

    comment = await client.post(url, json={"content": "Great"}, headers=as_user(2))
    assert comment.status_code == 201
    reply = await client.post(
        url,
        json={"content": "Thanks", "parent_comment_id": comment.json()["id"]},
        headers=as_user(1),
    )
    assert reply.status_code == 201
    assert reply.json()["parent_comment_id"] == comment.json()["id"]

    listed = await client.get(url, headers=as_user(3))
    assert [c["content"] for c in listed.json()] == ["Great", "Thanks"]

    post = await client.get(f"{POSTS}/{created['id']}", headers=as_user(1))
    assert post.json()["comments_count"] == 2


async def test_delete_comment_and_react_to_comment(client, as_user):
    created = await _create(client, as_user)
    comment = (await client.post(
        f"{POSTS}/{created['id']}/comments",
        json={"content": "Hmm"}, headers=as_user(2),
    )).json()
    comment_url = f"/api/v1/social/comments/{comment['id']}"

    reacted = await client.put(
        f"{comment_url}/reactions", json={"type": "support"}, headers=as_user(1),
    )
    assert reacted.status_code == 200
    assert reacted.json() == {"reaction": "support", "previous_reaction": None}

    not_allowed = await client.put(
        f"{comment_url}/reactions", json={"type": "insightful"}, headers=as_user(1),
    )
    assert not_allowed.status_code == 400

    deleted = await client.delete(comment_url, headers=as_user(2))
    assert deleted.json() == {"deleted": True, "comment_id": comment["id"]}
    gone = await client.delete(comment_url, headers=as_user(2))
    assert gone.status_code == 404


# ─── Reactions ───────────────────────────────────────────────────

async def test_post_reactions(client, as_user):
    created = await _create(client, as_user)
    url = f"{POSTS}/{created['id']}/reactions"

    first = await client.put(url, json={"type": "like"}, headers=as_user(2))
    second = await client.put(url, json={"type": "celebrate"}, headers=as_user(2))
    assert first.json() == {"reaction": "like", "previous_reaction": None}
    assert second.json() == {"reaction": "celebrate", "previous_reaction": "like"}

    post = (await client.get(f"{POSTS}/{created['id']}", headers=as_user(1))).json()
    assert [(r["user_id"], r["type"]) for r in post["reactions"]] == [(2, "celebrate")]

    removed = await client.delete(url, headers=as_user(2))
    assert removed.json() == {"removed": True}
    again = await client.delete(url, headers=as_user(2))
    assert again.json() == {"removed": False}


async def test_invalid_reaction_type(client, as_user):
    created = await _create(client, as_user)
    response = await client.put(
        f"{POSTS}/{created['id']}/reactions", json={"type": "angry"},
        headers=as_user(2),
    )
    assert response.status_code == 400


# ─── Polls ───────────────────────────────────────────────────────

async def test_poll_vote_and_results(client, as_user):
    created = await _create(
        client, as_user, content="Team lunch?", type="poll",
        poll_options=["Pizza", "Sushi"],
    )
    votes = f"{POSTS}/{created['id']}/poll-votes"

    first = await client.post(votes, json={"option": "Pizza"}, headers=as_user(2))
    assert first.json() == {
        "option": "Pizza", "previous_option": None, "is_first_vote": True,
    }
    await client.post(votes, json={"option": "Sushi"}, headers=as_user(2))
    await client.post(votes, json={"option": "Sushi"}, headers=as_user(3))

    bad = await client.post(votes, json={"option": "Tacos"}, headers=as_user(3))
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "INVALID_POLL_OPTION"

    results = await client.get(
        f"{POSTS}/{created['id']}/poll-results", headers=as_user(1),
    )
    body = results.json()
    assert body["options"] == {"Pizza": 0, "Sushi": 2}
    assert body["total_votes"] == 2
    assert body["is_expired"] is False


async def test_vote_on_non_poll(client, as_user):
    created = await _create(client, as_user)
    response = await client.post(
        f"{POSTS}/{created['id']}/poll-votes", json={"option": "a"},
        headers=as_user(2),
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "NOT_A_POLL"


# ─── Dry-run validation ──────────────────────────────────────────

async def test_validate_endpoint(client, as_user):
    ok = await client.post(
        "/api/v1/social/validate/create_post",
        json={"content": "Fine"}, headers=as_user(1),
    )
    assert ok.json() == {"valid": True, "errors": []}

    bad = await client.post(
        "/api/v1/social/validate/vote_poll", json={}, headers=as_user(4),
    )
    body = bad.json()
    assert bad.status_code == 200
    assert body["valid"] is False
    assert "User does not have access to this organization" in body["errors"]

    unknown = await client.post(
        "/api/v1/social/validate/share_post", json={}, headers=as_user(1),
    )
    assert unknown.status_code == 400
