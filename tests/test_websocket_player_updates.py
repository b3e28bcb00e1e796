from __future__ import annotations

from fastapi.testclient import TestClient


def test_ws_player_updates_broadcast(client: TestClient, players_table) -> None:
    client.post("/player/bootstrap")
    players_table.add(500, username="Linked", user_id="acct-5")

    with client.websocket_connect("/ws/player") as ws:
        res = client.put("/player/id", json={"player_id": 500})
        assert res.status_code == 200

        seen = []
        for _ in range(10):
            msg = ws.receive_json()
            assert msg["type"] == "player_updated"
            seen.append(msg)
            if msg["player_id"] == 500 and msg["state"] == "ready":
                break

        assert seen[-1] == {"type": "player_updated", "player_id": 500, "state": "ready"}
