from datetime import datetime, timedelta, timezone

from jurynow.auth.auth import Role
from jurynow.data.juror_manager import JurorManager
from jurynow.data.question_manager import QuestionManager
from jurynow.data.verdict_archive import VerdictArchive, sweep_overdue_sessions
from jurynow.main import app
from jurynow.models.question import QuestionStatus
from jurynow.services.panel_selector import PanelSelector
from jurynow.services.verdict_session import VerdictSessionCoordinator, get_verdict_coordinator


def _question(db_session, owner_id="requester-1"):
    return QuestionManager(db_session).create(
        owner_id=owner_id,
        prompt="Should I wear the red or the blue jacket?",
        option_a="Red",
        option_b="Blue",
        category="Fashion",
    )


def _open_session(client, auth_headers, question_id, owner_id="requester-1"):
    response = client.post(
        "/api/sessions",
        json={"question_id": question_id},
        headers=auth_headers(owner_id, Role.REQUESTER),
    )
    assert response.status_code == 201, response.text
    return response.json()


def _vote(client, auth_headers, question_id, juror_id, choice, reasoning=None):
    body = {"choice": choice}
    if reasoning is not None:
        body["reasoning"] = reasoning
    return client.post(
        f"/api/sessions/{question_id}/ballots",
        json=body,
        headers=auth_headers(juror_id, Role.JUROR),
    )


def test_create_session_returns_diverse_panel(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)

    data = _open_session(client, auth_headers, question.question_id)

    assert data["status"] == "voting"
    assert len(data["panel"]) == 12
    assert len(set(data["panel"])) == 12
    assert 0.0 <= data["diversity_score"] <= 1.0
    db_session.refresh(question)
    assert question.status == QuestionStatus.ACTIVE.value
    served = JurorManager(db_session).get(data["panel"][0])
    assert served.last_served_at is not None


def test_repeat_create_returns_same_panel(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    first = _open_session(client, auth_headers, question.question_id)

    response = client.post(
        "/api/sessions",
        json={"question_id": question.question_id},
        headers=auth_headers("requester-1", Role.REQUESTER),
    )

    assert response.status_code == 200
    assert response.json()["panel"] == first["panel"]
    assert response.json()["created"] is False


def test_create_session_with_small_pool_conflicts(client, db_session, auth_headers):
    manager = JurorManager(db_session)
    for index in range(10):
        manager.register(demographics={"region": "Europe"}, handle=f"small{index}")
    question = _question(db_session)

    response = client.post(
        "/api/sessions",
        json={"question_id": question.question_id},
        headers=auth_headers("requester-1", Role.REQUESTER),
    )

    assert response.status_code == 409
    assert response.json()["error"] == "InsufficientPoolError"
    db_session.refresh(question)
    assert question.status == QuestionStatus.PENDING.value


def test_create_session_requires_owner_or_admin(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)

    other = client.post(
        "/api/sessions",
        json={"question_id": question.question_id},
        headers=auth_headers("requester-2", Role.REQUESTER),
    )
    juror = client.post(
        "/api/sessions",
        json={"question_id": question.question_id},
        headers=auth_headers(seeded_jurors[0].juror_id, Role.JUROR),
    )
    anonymous = client.post("/api/sessions", json={"question_id": question.question_id})

    assert other.status_code == 403
    assert juror.status_code == 403
    assert anonymous.status_code == 401


def test_unknown_question_is_not_found(client, db_session, auth_headers):
    response = client.post(
        "/api/sessions",
        json={"question_id": "QST-999999"},
        headers=auth_headers("admin-1", Role.ADMIN),
    )

    assert response.status_code == 404
    assert response.json() == {
        "detail": "Question QST-999999 not found.",
        "error": "QuestionNotFoundError",
    }


def test_full_voting_round_produces_archived_verdict(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]

    for index, juror_id in enumerate(panel):
        response = _vote(
            client,
            auth_headers,
            question.question_id,
            juror_id,
            "A" if index < 7 else "B",
            reasoning="Gut feeling" if index == 0 else None,
        )
        assert response.status_code == 201, response.text
        assert response.json()["ballot_id"]

    verdict = client.get(
        f"/api/sessions/{question.question_id}/verdict",
        headers=auth_headers("requester-1", Role.REQUESTER),
    ).json()
    assert verdict["completion"] is True
    assert (verdict["tally_a"], verdict["tally_b"], verdict["outcome"]) == (7, 5, "A")
    assert verdict["quorum_reached"] is True
    assert verdict["provisional"] is False

    db_session.refresh(question)
    assert question.status == QuestionStatus.COMPLETED.value

    archived = client.get(
        f"/api/verdicts/question/{question.question_id}",
        headers=auth_headers("requester-1", Role.REQUESTER),
    )
    assert archived.status_code == 200
    body = archived.json()
    assert body["tally_a"] == 7
    assert len(body["ballots"]) == 12
    assert all("reasoning" not in ballot for ballot in body["ballots"])

    history = client.get(
        f"/api/verdicts/juror/{panel[0]}",
        headers=auth_headers(panel[0], Role.JUROR),
    ).json()
    assert history["pagination"]["total"] == 1
    assert history["verdicts"][0]["reasoning"] == "Gut feeling"

    judged = JurorManager(db_session).get_juror(panel[0])
    db_session.refresh(judged)
    assert judged.questions_judged == 1


def test_status_reports_progress(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    for juror_id in panel[:5]:
        assert _vote(client, auth_headers, question.question_id, juror_id, "b").status_code == 201

    status = client.get(
        f"/api/sessions/{question.question_id}/status",
        headers=auth_headers("requester-1", Role.REQUESTER),
    ).json()

    assert status == {
        "question_id": question.question_id,
        "state": "voting",
        "progress": {"received": 5, "total": 12, "percentage": 41},
        "current_tally": {"A": 0, "B": 5},
    }


def test_ballot_errors_map_to_status_codes(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    outsider = next(j.juror_id for j in seeded_jurors if j.juror_id not in panel)

    invalid = _vote(client, auth_headers, question.question_id, panel[0], "C")
    not_member = _vote(client, auth_headers, question.question_id, outsider, "A")
    first = _vote(client, auth_headers, question.question_id, panel[0], "A")
    duplicate = _vote(client, auth_headers, question.question_id, panel[0], "B")

    assert invalid.status_code == 422
    assert invalid.json()["error"] == "InvalidChoiceError"
    assert not_member.status_code == 403
    assert not_member.json()["error"] == "NotPanelMemberError"
    assert first.status_code == 201
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "AlreadyVotedError"


def test_suspended_panel_member_cannot_vote(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    JurorManager(db_session).update(panel[0], status="suspended")

    response = _vote(client, auth_headers, question.question_id, panel[0], "A")

    assert response.status_code == 403
    assert response.json()["error"] == "IneligibleJurorError"


def test_overlong_reasoning_is_rejected(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]

    response = _vote(client, auth_headers, question.question_id, panel[0], "A", reasoning="x" * 501)

    assert response.status_code == 422


def test_cancel_returns_forced_verdict(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    _vote(client, auth_headers, question.question_id, panel[0], "A")

    response = client.post(
        f"/api/sessions/{question.question_id}/cancel",
        headers=auth_headers("admin-1", Role.ADMIN),
    )

    assert response.status_code == 200
    verdict = response.json()
    assert verdict["forced_close"] is True
    assert verdict["quorum_reached"] is False
    assert verdict["close_reason"] == "cancelled"

    late = _vote(client, auth_headers, question.question_id, panel[1], "B")
    assert late.status_code == 409
    assert late.json()["error"] == "InvalidStateError"


def test_unknown_session_status_is_not_found(client, auth_headers):
    response = client.get(
        "/api/sessions/QST-424242/status",
        headers=auth_headers("admin-1", Role.ADMIN),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "SessionNotFoundError"


def _finish_round(client, auth_headers, question_id, panel):
    for index, juror_id in enumerate(panel):
        response = _vote(client, auth_headers, question_id, juror_id, "A" if index < 7 else "B")
        assert response.status_code == 201, response.text


def test_finalized_question_stays_closed_after_restart(client, db_session, seeded_jurors, auth_headers):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    _finish_round(client, auth_headers, question.question_id, panel)
    restarted = VerdictSessionCoordinator(
        selector=PanelSelector(dimensions=("region", "age_group"), seed="test-seed"),
        voting_window=timedelta(minutes=60),
    )
    app.dependency_overrides[get_verdict_coordinator] = lambda: restarted

    reopen = client.post(
        "/api/sessions",
        json={"question_id": question.question_id},
        headers=auth_headers("requester-1", Role.REQUESTER),
    )
    again = _vote(client, auth_headers, question.question_id, panel[0], "B")

    assert reopen.status_code == 409
    assert reopen.json()["error"] == "InvalidStateError"
    assert again.status_code == 409
    assert again.json()["error"] == "InvalidStateError"
    assert restarted.find_session(question.question_id) is None
    db_session.refresh(question)
    assert question.status == QuestionStatus.COMPLETED.value
    archived = VerdictArchive(db_session).ballots_for_question(question.question_id)
    assert len(archived) == 12


def test_timeout_sweep_archives_forced_verdict(client, db_session, seeded_jurors, auth_headers, coordinator):
    question = _question(db_session)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    for juror_id in panel[:5]:
        assert _vote(client, auth_headers, question.question_id, juror_id, "A").status_code == 201

    swept = sweep_overdue_sessions(
        db_session, coordinator, now=datetime.now(timezone.utc) + timedelta(hours=2)
    )

    assert swept == [question.question_id]
    record = VerdictArchive(db_session).get_record(question.question_id)
    assert record is not None
    assert record.close_reason == "timeout"
    assert record.forced_close is True
    assert (record.tally_a, record.tally_b) == (5, 0)
    db_session.refresh(question)
    assert question.status == QuestionStatus.COMPLETED.value
    archived = client.get(
        f"/api/verdicts/question/{question.question_id}",
        headers=auth_headers("requester-1", Role.REQUESTER),
    )
    assert archived.status_code == 200
    assert len(archived.json()["ballots"]) == 5


def test_sweep_leaves_open_sessions_alone(client, db_session, seeded_jurors, auth_headers, coordinator):
    question = _question(db_session)
    _open_session(client, auth_headers, question.question_id)

    assert sweep_overdue_sessions(db_session, coordinator) == []
    assert VerdictArchive(db_session).get_record(question.question_id) is None
    db_session.refresh(question)
    assert question.status == QuestionStatus.ACTIVE.value


def test_archived_session_is_evicted_and_served_from_archive(
    client, db_session, seeded_jurors, auth_headers, coordinator
):
    question = _question(db_session)
    requester = auth_headers("requester-1", Role.REQUESTER)
    panel = _open_session(client, auth_headers, question.question_id)["panel"]
    _finish_round(client, auth_headers, question.question_id, panel)

    status = client.get(f"/api/sessions/{question.question_id}/status", headers=requester)
    verdict = client.get(f"/api/sessions/{question.question_id}/verdict", headers=requester)
    cancel = client.post(f"/api/sessions/{question.question_id}/cancel", headers=requester)
    preview = client.get(f"/api/jury/selection?question_id={question.question_id}", headers=requester)

    assert coordinator.find_session(question.question_id) is None
    assert status.json() == {
        "question_id": question.question_id,
        "state": "finalized",
        "progress": {"received": 12, "total": 12, "percentage": 100},
        "current_tally": {"A": 7, "B": 5},
    }
    assert verdict.json()["outcome"] == "A"
    assert verdict.json()["close_reason"] == "complete"
    assert cancel.status_code == 200
    assert cancel.json()["forced_close"] is False
    assert preview.status_code == 200
    assert [member["juror_id"] for member in preview.json()["panel"]] == panel
