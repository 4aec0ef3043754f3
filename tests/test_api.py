"""End-to-end tests over HTTP, including the error envelope."""

from __future__ import annotations

import httpx
from litestar import Litestar

from tests.conftest import agent_headers, user_headers

# --- health / auth ---


async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "live_topics": 0}


async def test_missing_token_is_unauthorized(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/commands")
    assert response.status_code == 401
    assert response.json() == {
        "error": {"code": "unauthorized", "message": "Missing bearer token"},
    }


async def test_bad_user_token(client: httpx.AsyncClient) -> None:
    response = await client.get(
        "/api/v1/agents", headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


async def test_access_token_query_param(app: Litestar, client: httpx.AsyncClient) -> None:
    token = (await user_headers(app, "viewer"))["Authorization"].split(" ", 1)[1]
    response = await client.get("/api/v1/commands", params={"access_token": token})
    assert response.status_code == 200
    assert response.json() == []


async def test_viewer_cannot_create_agent(app: Litestar, client: httpx.AsyncClient) -> None:
    viewer = await user_headers(app, "viewer")
    response = await client.post("/api/v1/agents", json={"name": "x"}, headers=viewer)
    assert response.status_code == 403
    assert response.json()["error"] == {"code": "forbidden", "message": "Insufficient role"}


async def test_agent_token_required_for_agent_api(client: httpx.AsyncClient) -> None:
    response = await client.post("/api/v1/agent/commands/claim", json={})
    assert response.status_code == 401

    response = await client.post(
        "/api/v1/agent/commands/claim",
        json={},
        headers={"Authorization": "Bearer unknown-token"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid agent token"


# --- full command flow ---


async def test_command_round_trip(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    agent_id, agent = await agent_headers(client, operator)

    created = await client.post(
        "/api/v1/commands",
        json={"agentId": agent_id, "instruction": "uptime", "priority": 8},
        headers=operator,
    )
    assert created.status_code == 201
    command = created.json()
    assert command["status"] == "queued"
    assert command["priority"] == 8
    command_id = command["id"]

    claim = await client.post(
        "/api/v1/agent/commands/claim",
        json={"maxClaims": 5, "leaseSeconds": 30},
        headers=agent,
    )
    assert claim.status_code == 200
    items = claim.json()["items"]
    assert [item["id"] for item in items] == [command_id]
    assert items[0]["status"] == "dispatching"
    assert items[0]["attempt_count"] == 1

    extend = await client.post(
        f"/api/v1/agent/commands/{command_id}/lease/extend",
        json={"leaseSeconds": 120},
        headers=agent,
    )
    assert extend.status_code == 200
    assert extend.json()["lease_expires_at"] is not None

    progress = await client.post(
        f"/api/v1/agent/commands/{command_id}/progress",
        json={"status": "executing"},
        headers=agent,
    )
    assert progress.json() == {"id": command_id, "status": "executing"}

    chunk = await client.post(
        f"/api/v1/agent/commands/{command_id}/result",
        json={"chunkIndex": 0, "output": "up 3 days", "isFinal": False},
        headers=agent,
    )
    assert chunk.json() == {"id": command_id, "status": "executing", "accepted": True}

    final = await client.post(
        f"/api/v1/agent/commands/{command_id}/result",
        json={"chunk_index": 1, "output": "load 0.1", "is_final": True},
        headers=agent,
    )
    assert final.status_code == 200
    assert final.json()["status"] == "completed"

    fetched = await client.get(f"/api/v1/commands/{command_id}", headers=operator)
    assert fetched.json()["status"] == "completed"
    assert fetched.json()["completed_at"] is not None

    results = await client.get(f"/api/v1/commands/{command_id}/results", headers=operator)
    assert [r["output"] for r in results.json()] == ["up 3 days", "load 0.1"]

    events = await client.get(
        "/api/v1/events", params={"commandId": command_id}, headers=operator,
    )
    assert "command.completed" in {e["event_type"] for e in events.json()}

    cancel = await client.post(f"/api/v1/commands/{command_id}/cancel", headers=operator)
    assert cancel.status_code == 409
    assert cancel.json()["error"]["code"] == "conflict"


async def test_release_and_fail(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    agent_id, agent = await agent_headers(client, operator)
    command_id = (await client.post(
        "/api/v1/commands",
        json={"agentId": agent_id, "instruction": "flaky"},
        headers=operator,
    )).json()["id"]
    await client.post("/api/v1/agent/commands/claim", json={}, headers=agent)

    released = await client.post(
        f"/api/v1/agent/commands/{command_id}/release",
        json={"reason": "shutting down"},
        headers=agent,
    )
    assert released.json() == {"id": command_id, "status": "queued"}

    failed = await client.post(
        f"/api/v1/agent/commands/{command_id}/fail",
        json={"errorMessage": "gave up"},
        headers=agent,
    )
    assert failed.json() == {"id": command_id, "status": "failed"}

    listed = await client.get(
        "/api/v1/commands", params={"agentId": agent_id, "status": "failed"}, headers=operator,
    )
    assert [c["id"] for c in listed.json()] == [command_id]


async def test_other_agent_gets_forbidden(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    owner_id, _ = await agent_headers(client, operator, "owner")
    _, intruder = await agent_headers(client, operator, "intruder")
    command_id = (await client.post(
        "/api/v1/commands",
        json={"agentId": owner_id, "instruction": "private"},
        headers=operator,
    )).json()["id"]

    response = await client.post(
        f"/api/v1/agent/commands/{command_id}/fail",
        json={"errorMessage": "nope"},
        headers=intruder,
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "forbidden"


# --- error envelope ---


async def test_invalid_body_is_validation_error(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    response = await client.post("/api/v1/commands", json={"priority": 99}, headers=operator)

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "validation"
    assert error["message"] == "Invalid payload"
    fields = {tuple(e["loc"]) for e in error["details"]["errors"]}
    assert ("agentId",) in fields
    assert ("priority",) in fields


async def test_claim_bounds_are_validated(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    _, agent = await agent_headers(client, operator)
    response = await client.post(
        "/api/v1/agent/commands/claim", json={"leaseSeconds": 5}, headers=agent,
    )
    assert response.status_code == 400


async def test_unknown_command_is_not_found(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    response = await client.get("/api/v1/commands/missing", headers=operator)
    assert response.status_code == 404
    assert response.json() == {"error": {"code": "not_found", "message": "Command not found"}}


async def test_unknown_status_filter(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    response = await client.get(
        "/api/v1/commands", params={"status": "paused"}, headers=operator,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation"


async def test_stream_unknown_command(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    response = await client.get("/api/v1/commands/missing/stream", headers=operator)
    assert response.status_code == 404


async def test_unknown_route(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/nowhere")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


# --- agents ---


async def test_connect_intent_flow(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    intent = await client.post(
        "/api/v1/agents/connect-intents",
        json={"displayName": "Field unit"},
        headers=operator,
    )
    assert intent.status_code == 201
    body = intent.json()
    assert body["setup_url"] == "http://localhost:8000/api/v1/agent/connect/exchange"

    exchanged = await client.post(
        "/api/v1/agent/connect/exchange",
        json={"setupCode": body["setup_code"], "agentExternalId": "field-1"},
    )
    assert exchanged.status_code == 200
    token = exchanged.json()["token"]
    assert exchanged.json()["agent_id"] == body["agent_id"]

    agent = {"Authorization": f"Bearer {token}"}
    registered = await client.post(
        "/api/v1/agent/register",
        json={
            "externalId": "field-1",
            "name": "Field unit",
            "tools": [{"name": "scan", "inputSchema": {"type": "object"}}],
        },
        headers=agent,
    )
    assert registered.status_code == 200
    assert registered.json()["status"] == "online"
    assert registered.json()["capabilities"] == ["scan"]
    assert registered.json()["metadata"]["tools"] == [
        {"name": "scan", "inputSchema": {"type": "object"}},
    ]

    beat = await client.post("/api/v1/agent/heartbeat", json={"status": "busy"}, headers=agent)
    assert beat.json()["status"] == "busy"

    again = await client.post(
        "/api/v1/agent/connect/exchange",
        json={"setupCode": body["setup_code"], "agentExternalId": "field-1"},
    )
    assert again.status_code == 404


async def test_revoke_and_delete(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    agent_id, agent = await agent_headers(client, operator)

    listed = await client.get("/api/v1/agents", headers=operator)
    assert [a["id"] for a in listed.json()] == [agent_id]
    assert "token_hash" not in listed.json()[0]

    revoked = await client.post(f"/api/v1/agents/{agent_id}/token/revoke", headers=operator)
    assert revoked.json() == {"id": agent_id, "token_active": False}
    claim = await client.post("/api/v1/agent/commands/claim", json={}, headers=agent)
    assert claim.status_code == 401

    deleted = await client.delete(f"/api/v1/agents/{agent_id}", headers=operator)
    assert deleted.json() == {"id": agent_id, "deleted": True}
    assert (await client.get("/api/v1/agents", headers=operator)).json() == []


async def test_delete_agent_with_commands_conflicts(
    app: Litestar, client: httpx.AsyncClient,
) -> None:
    operator = await user_headers(app)
    agent_id, _ = await agent_headers(client, operator)
    await client.post(
        "/api/v1/commands",
        json={"agentId": agent_id, "instruction": "keep me"},
        headers=operator,
    )

    response = await client.delete(f"/api/v1/agents/{agent_id}", headers=operator)
    assert response.status_code == 409


# --- code sessions ---


async def test_code_session_flow(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    agent_id, agent = await agent_headers(client, operator)
    base = f"/api/v1/agents/{agent_id}/code/sessions"

    assert (await client.get(f"{base}/active", headers=operator)).json() == {"session": None}

    opened = await client.post(base, json={}, headers=operator)
    assert opened.status_code == 201
    session_id = opened.json()["id"]
    assert opened.json()["status"] == "active"

    reopened = await client.post(base, json={"reopen": True}, headers=operator)
    assert reopened.status_code == 200
    assert reopened.json()["id"] == session_id

    sent = await client.post(
        f"{base}/{session_id}/input", json={"input": "git status"}, headers=operator,
    )
    assert sent.status_code == 202
    assert sent.json() == {"accepted": True, "seq": 1}

    output = await client.post(
        f"/api/v1/agent/code/sessions/{session_id}/output",
        json={
            "lines": [{"line": "clean"}, {"line": "warn!", "level": "warn"}],
            "status": "closed",
        },
        headers=agent,
    )
    assert output.status_code == 200
    assert output.json() == {"accepted": True, "count": 2}

    page = await client.get(
        f"{base}/{session_id}/events", params={"cursor": 1, "limit": 2}, headers=operator,
    )
    body = page.json()
    assert [(e["seq"], e["direction"]) for e in body["items"]] == [(2, "output"), (3, "output")]
    assert body["next_cursor"] == 3

    active = (await client.get(f"{base}/active", headers=operator)).json()["session"]
    assert active["status"] == "closed"
    assert active["closed_at"] is not None

    refused = await client.post(
        f"{base}/{session_id}/input", json={"input": "again"}, headers=operator,
    )
    assert refused.status_code == 409
    assert refused.json()["error"] == {"code": "conflict", "message": "Session is closed"}


async def test_code_session_access_rules(app: Litestar, client: httpx.AsyncClient) -> None:
    operator = await user_headers(app)
    viewer = await user_headers(app, "viewer")
    agent_id, _ = await agent_headers(client, operator, "owner")
    other_id, other = await agent_headers(client, operator, "other")
    base = f"/api/v1/agents/{agent_id}/code/sessions"

    forbidden = await client.post(base, json={}, headers=viewer)
    assert forbidden.status_code == 403

    session_id = (await client.post(base, json={}, headers=operator)).json()["id"]

    wrong_agent = await client.get(
        f"/api/v1/agents/{other_id}/code/sessions/{session_id}/events", headers=operator,
    )
    assert wrong_agent.status_code == 404
    assert wrong_agent.json()["error"]["message"] == "Session not found for agent"

    foreign_output = await client.post(
        f"/api/v1/agent/code/sessions/{session_id}/output",
        json={"lines": [{"line": "hi"}]},
        headers=other,
    )
    assert foreign_output.status_code == 403

    bad_output = await client.post(
        f"/api/v1/agent/code/sessions/{session_id}/output",
        json={"lines": [], "status": "paused"},
        headers=other,
    )
    assert bad_output.status_code == 400
    assert bad_output.json()["error"]["code"] == "validation"

    stream = await client.get(
        f"/api/v1/agents/{other_id}/code/sessions/{session_id}/stream", headers=operator,
    )
    assert stream.status_code == 404
