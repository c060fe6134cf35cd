from jurynow.auth.auth import Role
from jurynow.data.question_manager import QuestionManager


def test_register_defaults_to_every_category(client, admin_headers):
    response = client.post(
        "/api/jury/register",
        json={"handle": "alice", "demographics": {"region": "Europe", "age_group": "25-34"}},
        headers=admin_headers,
    )

    assert response.status_code == 201, response.text
    juror = response.json()
    assert juror["juror_id"] == "JUR-00001"
    assert juror["status"] == "active"
    assert juror["reliability"] == 1.0
    assert juror["questions_judged"] == 0
    assert "Moral" in juror["categories"]
    assert len(juror["categories"]) == 6


def test_register_normalizes_known_categories_and_rejects_unknown(client, admin_headers):
    ok = client.post(
        "/api/jury/register",
        json={"demographics": {"region": "Asia"}, "categories": ["moral", "Trivial"]},
        headers=admin_headers,
    )
    bad = client.post(
        "/api/jury/register",
        json={"demographics": {"region": "Asia"}, "categories": ["Astrology"]},
        headers=admin_headers,
    )

    assert ok.json()["categories"] == ["Moral", "Trivial"]
    assert bad.status_code == 422


def test_register_requires_admin(client, auth_headers):
    response = client.post(
        "/api/jury/register",
        json={"demographics": {"region": "Asia"}},
        headers=auth_headers("someone", Role.REQUESTER),
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


def test_list_jurors_paginates(client, seeded_jurors, admin_headers):
    response = client.get("/api/jury?page=2&limit=10", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 2, "limit": 10, "total": 15, "pages": 2}
    assert len(body["jurors"]) == 5


def test_pool_stats_break_down_demographics(client, seeded_jurors, admin_headers):
    response = client.get("/api/jury/stats", headers=admin_headers)

    stats = response.json()
    assert stats["total_jurors"] == 15
    assert stats["active_jurors"] == 15
    assert stats["average_reliability"] == 1.0
    assert stats["demographics"]["region"] == {"North America": 5, "Europe": 5, "Asia": 5}
    assert sum(stats["demographics"]["age_group"].values()) == 15


def test_admin_can_suspend_and_reweight(client, seeded_jurors, admin_headers):
    juror_id = seeded_jurors[0].juror_id

    response = client.patch(
        f"/api/jury/{juror_id}",
        json={"status": "suspended", "reliability": 0.25},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "suspended"
    assert response.json()["reliability"] == 0.25
    stats = client.get("/api/jury/stats", headers=admin_headers).json()
    assert stats["active_jurors"] == 14


def test_update_unknown_juror_is_not_found(client, admin_headers):
    response = client.patch("/api/jury/JUR-77777", json={"status": "inactive"}, headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "JurorNotFoundError"


def test_juror_sees_only_own_profile(client, seeded_jurors, auth_headers):
    me, other = seeded_jurors[0].juror_id, seeded_jurors[1].juror_id

    assert client.get(f"/api/jury/{me}", headers=auth_headers(me)).status_code == 200
    assert client.get(f"/api/jury/{other}", headers=auth_headers(me)).status_code == 403


def test_panel_preview_shows_demographics(client, db_session, seeded_jurors, auth_headers):
    question = QuestionManager(db_session).create(
        owner_id="requester-1",
        prompt="Tea or coffee?",
        option_a="Tea",
        option_b="Coffee",
        category="Trivial",
    )
    requester = auth_headers("requester-1", Role.REQUESTER)
    missing = client.get(
        f"/api/jury/selection?question_id={question.question_id}", headers=requester
    )
    client.post("/api/sessions", json={"question_id": question.question_id}, headers=requester)

    response = client.get(
        f"/api/jury/selection?question_id={question.question_id}", headers=requester
    )

    assert missing.status_code == 404
    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "Trivial"
    assert len(body["panel"]) == 12
    regions = {member["demographics"]["region"] for member in body["panel"]}
    assert regions == {"Asia", "Europe", "North America"}
    assert 0.0 < body["diversity_score"] <= 1.0


def test_questions_round_trip_and_categories(client, auth_headers):
    requester = auth_headers("requester-9", Role.REQUESTER)

    categories = client.get("/api/questions/categories").json()["categories"]
    created = client.post(
        "/api/questions",
        json={
            "prompt": "Should I tell my friend the truth?",
            "option_a": "Yes",
            "option_b": "No",
            "category": "moral",
        },
        headers=requester,
    )
    bad = client.post(
        "/api/questions",
        json={"prompt": "?", "option_a": "x", "option_b": "y", "category": "Sports"},
        headers=requester,
    )

    assert "Moral" in categories
    assert created.status_code == 201
    question = created.json()
    assert question["category"] == "Moral"
    assert question["status"] == "pending"
    assert question["owner_id"] == "requester-9"
    fetched = client.get(f"/api/questions/{question['question_id']}", headers=requester)
    assert fetched.json()["prompt"] == "Should I tell my friend the truth?"
    mine = client.get("/api/questions", headers=requester).json()
    assert [item["question_id"] for item in mine] == [question["question_id"]]
    assert bad.status_code == 422


def test_invalid_token_is_rejected(client):
    response = client.get("/api/jury/stats", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
