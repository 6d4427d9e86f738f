"""
HTTP tests against the FastAPI app. The in-process oracle runs the heuristic backend, so the
whole path (split, fan-out, topics, export) runs without Ollama.
"""

from __future__ import annotations

import io

from openpyxl import load_workbook

from services.samples import SAMPLE_COMMENTS


def _new_session(client) -> str:
    resp = client.post("/v1/sessions")
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "idle"
    assert body["has_result"] is False
    return body["session_id"]


def test_sample_data(client):
    resp = client.get("/v1/sessions/sample")
    assert resp.status_code == 200
    body = resp.json()
    assert body["comment_count"] == len(SAMPLE_COMMENTS)
    assert body["text"].split("\n")[0] == SAMPLE_COMMENTS[0]


def test_analyze_then_read_result_topics_and_export(client):
    session_id = _new_session(client)
    text = client.get("/v1/sessions/sample").json()["text"]

    resp = client.post(f"/v1/sessions/{session_id}/analyze?wait=true", json={"text": text})
    assert resp.status_code == 200
    snapshot = resp.json()
    assert snapshot["state"] == "idle"
    assert snapshot["has_result"] is True
    assert snapshot["generation"] == 1
    assert snapshot["topics_status"] == "completed"

    result = client.get(f"/v1/sessions/{session_id}/result").json()
    assert [u["text"] for u in result["units"]] == list(SAMPLE_COMMENTS)
    assert len(result["distribution"]) == 5
    assert sum(d["count"] for d in result["distribution"]) == len(SAMPLE_COMMENTS)
    assert -1.0 <= result["overall_score"] <= 1.0

    topics = client.get(f"/v1/sessions/{session_id}/topics").json()
    assert topics["status"] == "completed"
    assert topics["generation"] == 1
    assigned = sorted(c for t in topics["topics"] for c in t["comments"])
    assert assigned == sorted(SAMPLE_COMMENTS)
    assert all(t["average_sentiment"] is not None for t in topics["topics"])

    export = client.get(f"/v1/sessions/{session_id}/export")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert ".xlsx" in export.headers["content-disposition"]
    ws = load_workbook(io.BytesIO(export.content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0] == ("Comment Number", "Comment Text", "Sentiment Score", "Sentiment Category", "Topic")
    assert len(rows) == len(SAMPLE_COMMENTS) + 1
    assert all(r[4] != "Uncategorized" for r in rows[1:])


def test_result_is_persisted(client, settings):
    session_id = _new_session(client)
    client.post(f"/v1/sessions/{session_id}/analyze?wait=true", json={"text": "great day\nawful coffee"})
    session_dir = settings.data_dir / session_id
    assert (session_dir / "result.json").exists()
    assert (session_dir / "status.json").exists()


def test_empty_text_is_rejected(client):
    session_id = _new_session(client)
    resp = client.post(f"/v1/sessions/{session_id}/analyze", json={"text": "   \n "})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please enter some text to analyze."


def test_export_requires_results(client):
    session_id = _new_session(client)
    resp = client.get(f"/v1/sessions/{session_id}/export")
    assert resp.status_code == 409
    assert client.get(f"/v1/sessions/{session_id}/result").status_code == 404


def test_clear_drops_results(client):
    session_id = _new_session(client)
    client.post(f"/v1/sessions/{session_id}/analyze?wait=true", json={"text": "nice\nbad"})

    resp = client.delete(f"/v1/sessions/{session_id}/text")
    assert resp.status_code == 200
    body = resp.json()
    assert body["has_result"] is False
    assert body["generation"] == 2
    assert body["topics_status"] == "idle"
    assert client.get(f"/v1/sessions/{session_id}/result").status_code == 404
    assert client.get(f"/v1/sessions/{session_id}/export").status_code == 409


def test_unknown_session_is_404(client):
    assert client.get("/v1/sessions/missing").status_code == 404
    assert client.post("/v1/sessions/missing/analyze", json={"text": "x"}).status_code == 404


def test_list_sessions(client):
    first = _new_session(client)
    second = _new_session(client)
    ids = {s["session_id"] for s in client.get("/v1/sessions").json()}
    assert {first, second} <= ids


# --- Oracle function ---


def test_oracle_function_scores_text(client):
    resp = client.post("/v1/analyze-sentiment", json={"text": "Great and helpful."})
    assert resp.status_code == 200
    assert resp.json() == {"score": 0.6}


def test_oracle_function_topics_mode(client):
    resp = client.post("/v1/analyze-sentiment", json={"text": "good food\nbad room", "mode": "topics"})
    assert resp.status_code == 200
    topics = resp.json()["topics"]
    assert sorted(c for t in topics for c in t["comments"]) == ["bad room", "good food"]


def test_oracle_function_rejects_empty_text(client):
    resp = client.post("/v1/analyze-sentiment", json={"text": " "})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No text provided for analysis"}


def test_oracle_function_reports_connection_drops_as_json(client, monkeypatch):
    import services.llm as llm
    from services.config import get_settings

    def dropped(prompt, system, settings):
        raise ConnectionResetError(104, "Connection reset by peer")

    monkeypatch.setenv("LLM_BACKEND", "ollama")
    get_settings.cache_clear()
    monkeypatch.setattr(llm, "_ollama_generate", dropped)

    resp = client.post("/v1/analyze-sentiment", json={"text": "hello"})
    assert resp.status_code == 500
    assert "Connection reset by peer" in resp.json()["error"]
