"""
Tests for the GraphQL API and the HTTP endpoints around it.
"""
import time
import uuid

import pytest
from fastapi.testclient import TestClient

from postcomments.app import create_app
from postcomments.config import Config
from postcomments.dependencies.services import ServiceContainer, set_services
from postcomments.exceptions import StorageUnavailableError
from postcomments.storage import MemoryStorage


CREATE_POST = """
mutation($input: CreatePostInput!) {
    createPost(input: $input) { id title content authorId commentsAllowed createdAt }
}
"""

CREATE_COMMENT = """
mutation($input: CreateCommentInput!) {
    createComment(input: $input) { id postId parentId content createdAt }
}
"""


@pytest.fixture
def services():
    """Service container backed by in-memory storage."""
    container = ServiceContainer(Config(), MemoryStorage())
    yield container
    set_services(None)


@pytest.fixture
def client(services):
    """Create test client."""
    return TestClient(create_app(services))


def gql(client, query, variables=None):
    response = client.post("/graphql", json={"query": query, "variables": variables or {}})
    assert response.status_code == 200
    return response.json()


def create_post(client, comments_allowed=True, title="Hello"):
    result = gql(client, CREATE_POST, {"input": {
        "title": title,
        "content": "First post",
        "commentsAllowed": comments_allowed,
    }})
    assert "errors" not in result, result
    return result["data"]["createPost"]


def create_comment(client, post_id, content="nice", parent_id=None):
    return gql(client, CREATE_COMMENT, {"input": {
        "postId": post_id,
        "content": content,
        "parentId": parent_id,
    }})


def error_code(result):
    assert result.get("errors"), result
    return result["errors"][0]["extensions"]["code"]


# ============================================================================
# Posts
# ============================================================================

def test_create_and_query_post(client):
    post = create_post(client)
    uuid.UUID(post["id"])
    assert post["title"] == "Hello"
    assert post["commentsAllowed"] is True
    assert post["createdAt"]

    result = gql(client, "query($id: UUID!) { post(id: $id) { id title content } }", {"id": post["id"]})
    assert result["data"]["post"] == {"id": post["id"], "title": "Hello", "content": "First post"}


def test_query_missing_post(client):
    result = gql(client, "query($id: UUID!) { post(id: $id) { id } }", {"id": str(uuid.uuid4())})
    assert error_code(result) == "POST_NOT_FOUND"
    assert "not found" in result["errors"][0]["message"]
    assert result["errors"][0]["extensions"]["status"] == 404


def test_list_posts_pagination(client):
    ids = [create_post(client, title=f"p{i}")["id"] for i in range(5)]

    result = gql(client, "{ posts(limit: 2, offset: 1) { id } }")
    assert [p["id"] for p in result["data"]["posts"]] == ids[1:3]

    assert gql(client, "{ posts(limit: 0) { id } }")["data"]["posts"] == []
    assert len(gql(client, "{ posts(limit: 10, offset: -4) { id } }")["data"]["posts"]) == 5


def test_update_post(client):
    post = create_post(client)
    result = gql(client, """
        mutation($id: UUID!) {
            updatePost(id: $id, input: {title: "Edited", content: "Body", commentsAllowed: false}) {
                id title content commentsAllowed createdAt
            }
        }
    """, {"id": post["id"]})
    updated = result["data"]["updatePost"]
    assert updated["title"] == "Edited"
    assert updated["commentsAllowed"] is False
    assert updated["createdAt"] == post["createdAt"]


def test_set_comments_allowed(client):
    post = create_post(client)
    result = gql(client, """
        mutation($id: UUID!) { setCommentsAllowed(id: $id, allowed: false) { title commentsAllowed } }
    """, {"id": post["id"]})
    assert result["data"]["setCommentsAllowed"] == {"title": "Hello", "commentsAllowed": False}

    assert error_code(create_comment(client, post["id"])) == "COMMENTS_DISABLED"


def test_delete_post_cascades(client):
    post = create_post(client)
    comment = create_comment(client, post["id"])["data"]["createComment"]

    result = gql(client, "mutation($id: UUID!) { deletePost(id: $id) }", {"id": post["id"]})
    assert result["data"]["deletePost"] is True

    result = gql(client, "query($id: UUID!) { comment(id: $id) { id } }", {"id": comment["id"]})
    assert error_code(result) == "COMMENT_NOT_FOUND"

    result = gql(client, "mutation($id: UUID!) { deletePost(id: $id) }", {"id": post["id"]})
    assert error_code(result) == "POST_NOT_FOUND"


# ============================================================================
# Comments
# ============================================================================

def test_comment_thread(client):
    post = create_post(client)
    parent = create_comment(client, post["id"], "parent")["data"]["createComment"]
    reply = create_comment(client, post["id"], "reply", parent_id=parent["id"])["data"]["createComment"]
    assert reply["parentId"] == parent["id"]
    assert reply["postId"] == post["id"]

    result = gql(client, """
        query($id: UUID!) { post(id: $id) { comments(limit: 10) { id content parentId } } }
    """, {"id": post["id"]})
    assert [c["content"] for c in result["data"]["post"]["comments"]] == ["parent", "reply"]

    result = gql(client, "query($id: UUID!) { comments(postId: $id, limit: 1, offset: 1) { id } }",
                 {"id": post["id"]})
    assert [c["id"] for c in result["data"]["comments"]] == [reply["id"]]


def test_comments_for_unknown_post_is_empty(client):
    result = gql(client, "query($id: UUID!) { comments(postId: $id) { id } }", {"id": str(uuid.uuid4())})
    assert result["data"]["comments"] == []


@pytest.mark.parametrize("make_input, code, status", [
    (lambda post_id, other: {"postId": str(uuid.uuid4()), "content": "x"}, "POST_NOT_FOUND", 404),
    (lambda post_id, other: {"postId": post_id, "content": "x" * 2001}, "COMMENT_TOO_LONG", 422),
    (lambda post_id, other: {"postId": post_id, "content": "x", "parentId": str(uuid.uuid4())},
     "PARENT_COMMENT_NOT_FOUND", 404),
    (lambda post_id, other: {"postId": post_id, "content": "x", "parentId": other},
     "PARENT_COMMENT_WRONG_POST", 422),
])
def test_create_comment_errors(client, make_input, code, status):
    post = create_post(client)
    other_post = create_post(client, title="other")
    foreign = create_comment(client, other_post["id"])["data"]["createComment"]

    result = gql(client, CREATE_COMMENT, {"input": make_input(post["id"], foreign["id"])})
    assert error_code(result) == code
    assert result["errors"][0]["extensions"]["status"] == status


def test_comment_at_length_limit(client):
    post = create_post(client)
    result = create_comment(client, post["id"], "x" * 2000)
    assert len(result["data"]["createComment"]["content"]) == 2000


def test_update_comment(client):
    post = create_post(client)
    comment = create_comment(client, post["id"])["data"]["createComment"]

    result = gql(client, """
        mutation($id: UUID!) { updateComment(id: $id, content: "edited") { id content postId createdAt } }
    """, {"id": comment["id"]})
    updated = result["data"]["updateComment"]
    assert updated["content"] == "edited"
    assert updated["postId"] == post["id"]
    assert updated["createdAt"] == comment["createdAt"]

    result = gql(client, "mutation($id: UUID!) { updateComment(id: $id, content: \"x\") { id } }",
                 {"id": str(uuid.uuid4())})
    assert error_code(result) == "COMMENT_NOT_FOUND"


def test_delete_comment_removes_replies(client):
    post = create_post(client)
    parent = create_comment(client, post["id"], "parent")["data"]["createComment"]
    create_comment(client, post["id"], "reply", parent_id=parent["id"])

    result = gql(client, "mutation($id: UUID!) { deleteComment(id: $id) }", {"id": parent["id"]})
    assert result["data"]["deleteComment"] is True

    result = gql(client, "query($id: UUID!) { comments(postId: $id) { id } }", {"id": post["id"]})
    assert result["data"]["comments"] == []


def test_storage_failure_hides_details(client, services, monkeypatch):
    def broken(*args):
        raise StorageUnavailableError("connection refused by db-host:5432", operation="list_posts")

    monkeypatch.setattr(services.storage, "list_posts", broken)
    result = gql(client, "{ posts { id } }")
    assert error_code(result) == "STORAGE_UNAVAILABLE"
    assert "db-host" not in result["errors"][0]["message"]
    assert result["errors"][0]["extensions"]["status"] == 503


# ============================================================================
# Subscriptions
# ============================================================================

def test_comment_added_subscription(client, services):
    post = create_post(client)
    other_post = create_post(client, title="other")

    with client.websocket_connect("/graphql", subprotocols=["graphql-transport-ws"]) as ws:
        ws.send_json({"type": "connection_init"})
        assert ws.receive_json()["type"] == "connection_ack"
        ws.send_json({
            "id": "sub-1",
            "type": "subscribe",
            "payload": {
                "query": "subscription($id: UUID!) { commentAdded(postId: $id) { postId content } }",
                "variables": {"id": post["id"]},
            },
        })

        deadline = time.time() + 5
        while services.broker.subscriber_count(uuid.UUID(post["id"])) == 0:
            assert time.time() < deadline, "subscription never registered"
            time.sleep(0.01)

        create_comment(client, other_post["id"], "elsewhere")
        create_comment(client, post["id"], "live")

        message = ws.receive_json()
        assert message["type"] == "next"
        assert message["id"] == "sub-1"
        assert message["payload"]["data"]["commentAdded"] == {"postId": post["id"], "content": "live"}

        ws.send_json({"id": "sub-1", "type": "complete"})


# ============================================================================
# HTTP endpoints
# ============================================================================

def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["components"]["storage"]["backend"] == "MemoryStorage"


def test_health_endpoint_unhealthy(client, services, monkeypatch):
    def broken():
        raise StorageUnavailableError("down", operation="ping")

    monkeypatch.setattr(services.storage, "ping", broken)
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["components"]["storage"]["status"] == "unhealthy"


def test_ready_endpoint(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "backend": "MemoryStorage"}


def test_ready_endpoint_storage_down(client, services, monkeypatch):
    def broken():
        raise StorageUnavailableError("connection refused by db-host:5432", operation="ping")

    monkeypatch.setattr(services.storage, "ping", broken)
    response = client.get("/ready", headers={"X-Request-ID": "ready-1"})
    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "STORAGE_UNAVAILABLE"
    assert body["request_id"] == "ready-1"
    assert "context" not in body
    assert response.headers["X-Request-ID"] == "ready-1"


def test_metrics_endpoint(client):
    create_post(client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "storage_operations_total" in response.text
    assert "http_requests_total" in response.text


def test_request_id_header(client):
    response = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert client.get("/health").headers["X-Request-ID"]
