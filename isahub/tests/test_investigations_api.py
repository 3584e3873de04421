import io
import json
import zipfile
from pathlib import Path

from isahub.auth.session import create_session
from isahub.config import get_settings
from isahub.db import Base, dispose_engine
from isahub.db.database import get_engine
from isahub.db.models import AuditLog, Investigation, PermissionGrant, Policy, Programme, Project, Study, User
from isahub.main import create_app
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "investigations_test.db"
    db_url = f"sqlite:///{db_path.as_posix()}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    monkeypatch.setenv("BOOTSTRAP_ADMIN_ENABLED", "false")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _get_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def _seed(engine):
    """alice and carol are members of proj1 (in programme prog1); bob is in proj2."""
    db = _get_session(engine)
    try:
        alice = User(email="alice@example.com", username="alice", hashed_password="x", is_active=True)
        bob = User(email="bob@example.com", username="bob", hashed_password="x", is_active=True)
        carol = User(email="carol@example.com", username="carol", hashed_password="x", is_active=True)
        programme = Programme(title="Programme one")
        proj1 = Project(title="Project one", programme=programme, members=[alice, carol])
        proj2 = Project(title="Project two", members=[bob])
        db.add_all([alice, bob, carol, programme, proj1, proj2])
        db.commit()
        ids = {
            "alice": alice.id,
            "bob": bob.id,
            "carol": carol.id,
            "programme": programme.id,
            "proj1": proj1.id,
            "proj2": proj2.id,
        }
        ids["alice_token"] = create_session(db, alice)
        ids["bob_token"] = create_session(db, bob)
        ids["carol_token"] = create_session(db, carol)
        return ids
    finally:
        db.close()


def _login(client, tokens):
    session_token, csrf_token = tokens
    settings = get_settings()
    client.cookies.set(settings.session_cookie_name, session_token)
    client.cookies.set(settings.csrf_cookie_name, csrf_token)
    client.headers[settings.csrf_header_name] = csrf_token


def _logout(client):
    client.cookies.clear()


def _payload(seed, **overrides):
    body = {
        "investigation": {
            "title": "Soil metagenomics",
            "description": "Sampling across three sites",
            "other_creators": "Field team",
            "project_ids": [seed["proj1"]],
        }
    }
    body["investigation"].update(overrides.pop("investigation", {}))
    body.update(overrides)
    return body


def _create(client, seed, **overrides):
    res = client.post("/api/investigations", json=_payload(seed, **overrides))
    assert res.status_code == 201, res.text
    return res.json()["data"]


def _count(engine, model):
    db = _get_session(engine)
    try:
        return db.query(model).count()
    finally:
        db.close()


def test_create_then_read_round_trip(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed)
        assert created["type"] == "investigations"

        res = client.get(f"/api/investigations/{created['id']}")
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("application/vnd.api+json")
        document = res.json()
        shown = document["data"]
        assert shown["attributes"]["title"] == "Soil metagenomics"
        assert shown["attributes"]["description"] == "Sampling across three sites"
        assert shown["attributes"]["other_creators"] == "Field team"
        assert shown["attributes"]["policy"] == {"access": "private", "permissions": []}
        assert shown["relationships"]["projects"]["data"] == [{"type": "projects", "id": seed["proj1"]}]
        assert shown["relationships"]["submitter"]["data"] == {"type": "people", "id": seed["alice"]}
        assert document["jsonapi"] == {"version": "1.0"}
        assert document["meta"]["created"] != ""

    dispose_engine()


def test_create_requires_login(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        res = client.post("/api/investigations", json=_payload(seed))
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "E4010"

    assert _count(engine, Investigation) == 0
    dispose_engine()


def test_create_without_title_is_rejected(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.post("/api/investigations", json=_payload(seed, investigation={"title": "  "}))
        assert res.status_code == 422
        body = res.json()
        assert body["error"]["code"] == "E4220"
        assert "title" in body["errors"]

    assert _count(engine, Investigation) == 0
    assert _count(engine, Policy) == 0
    dispose_engine()


def test_create_without_projects_is_rejected(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.post("/api/investigations", json=_payload(seed, investigation={"project_ids": []}))
        assert res.status_code == 422
        errors = res.json()["errors"]
        assert errors["project_ids"]

    assert _count(engine, Investigation) == 0
    dispose_engine()


def test_create_in_foreign_project_is_rejected(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.post(
            "/api/investigations", json=_payload(seed, investigation={"project_ids": [seed["proj2"]]})
        )
        assert res.status_code == 422
        assert "project_ids" in res.json()["errors"]

    assert _count(engine, Investigation) == 0
    dispose_engine()


def test_create_with_policy_and_permissions(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(
            client,
            seed,
            policy_attributes={
                "access_type": "visible",
                "permissions": [
                    {"contributor_type": "User", "contributor_id": seed["bob"], "access_type": "editing"},
                    {"contributor_type": "Project", "contributor_id": seed["proj1"], "access_type": 2},
                ],
            },
        )
        assert created["attributes"]["policy"] == {
            "access": "visible",
            "permissions": [
                {"resource": {"type": "User", "id": seed["bob"]}, "access": "editing"},
                {"resource": {"type": "Project", "id": seed["proj1"]}, "access": "accessible"},
            ],
        }

        _login(client, seed["bob_token"])
        res = client.get(f"/api/investigations/{created['id']}/edit")
        assert res.status_code == 200

    assert _count(engine, PermissionGrant) == 2
    dispose_engine()


def test_create_rejects_unknown_grant_contributor(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.post(
            "/api/investigations",
            json=_payload(
                seed,
                policy_attributes={
                    "permissions": [
                        {"contributor_type": "User", "contributor_id": "ghost", "access_type": "visible"}
                    ]
                },
            ),
        )
        assert res.status_code == 422
        assert "permissions" in res.json()["errors"]

    assert _count(engine, Investigation) == 0
    dispose_engine()


def test_private_investigation_access(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed)

        _logout(client)
        res = client.get(f"/api/investigations/{created['id']}")
        assert res.status_code == 401
        assert res.json()["login_required"] is True

        _login(client, seed["bob_token"])
        res = client.get(f"/api/investigations/{created['id']}")
        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2001"

        res = client.get("/api/investigations/missing")
        assert res.status_code == 404

    dispose_engine()


def test_index_lists_only_viewable(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        private = _create(client, seed, investigation={"title": "Private"})
        public = _create(client, seed, investigation={"title": "Public"}, policy_attributes={"access_type": "visible"})

        ids = [r["id"] for r in client.get("/api/investigations").json()["data"]]
        assert set(ids) == {private["id"], public["id"]}

        _logout(client)
        ids = [r["id"] for r in client.get("/api/investigations").json()["data"]]
        assert ids == [public["id"]]

    dispose_engine()


def test_index_follows_grants(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    db = _get_session(engine)
    try:
        admin = User(email="root@example.com", username="root", hashed_password="x", is_active=True, is_admin=True)
        db.add(admin)
        db.commit()
        admin_token = create_session(db, admin)
    finally:
        db.close()

    def grant(contributor_type, contributor_id, access_type):
        return {
            "permissions": [
                {"contributor_type": contributor_type, "contributor_id": contributor_id, "access_type": access_type}
            ]
        }

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        for_bob = _create(client, seed, policy_attributes=grant("User", seed["bob"], "visible"))
        for_proj2 = _create(client, seed, policy_attributes=grant("Project", seed["proj2"], "accessible"))
        no_view = _create(client, seed, policy_attributes=grant("User", seed["bob"], "private"))

        _login(client, seed["bob_token"])
        ids = {r["id"] for r in client.get("/api/investigations").json()["data"]}
        assert ids == {for_bob["id"], for_proj2["id"]}

        _login(client, seed["carol_token"])
        assert client.get("/api/investigations").json()["data"] == []

        _login(client, admin_token)
        ids = {r["id"] for r in client.get("/api/investigations").json()["data"]}
        assert ids == {for_bob["id"], for_proj2["id"], no_view["id"]}

    dispose_engine()


def test_cookie_writes_require_csrf_header(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)
    settings = get_settings()

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed)

        del client.headers[settings.csrf_header_name]
        res = client.put(f"/api/investigations/{created['id']}", json={"investigation": {"title": "Forged"}})
        assert res.status_code == 403
        assert res.json()["error"]["code"] == "E2002"

        res = client.delete(
            f"/api/investigations/{created['id']}",
            headers={settings.csrf_header_name: "not-the-token"},
        )
        assert res.status_code == 403

        # Reads need no token.
        res = client.get(f"/api/investigations/{created['id']}")
        assert res.status_code == 200
        assert res.json()["data"]["attributes"]["title"] == "Soil metagenomics"

    assert _count(engine, Investigation) == 1
    dispose_engine()


def test_nested_programme_and_project_listing(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        in_programme = _create(client, seed, policy_attributes={"access_type": "visible"})

        _login(client, seed["bob_token"])
        elsewhere = _create(
            client,
            seed,
            investigation={"title": "Elsewhere", "project_ids": [seed["proj2"]]},
            policy_attributes={"access_type": "visible"},
        )

        res = client.get(f"/api/programmes/{seed['programme']}/investigations")
        assert res.status_code == 200
        assert [r["id"] for r in res.json()["data"]] == [in_programme["id"]]

        res = client.get(f"/api/projects/{seed['proj2']}/investigations")
        assert [r["id"] for r in res.json()["data"]] == [elsewhere["id"]]

        res = client.get("/api/programmes/unknown/investigations")
        assert res.status_code == 404

    dispose_engine()


def test_owner_updates_investigation(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed)

        res = client.put(
            f"/api/investigations/{created['id']}",
            json={"investigation": {"title": "Renamed", "description": "New description"}},
        )
        assert res.status_code == 200
        attrs = res.json()["data"]["attributes"]
        assert attrs["title"] == "Renamed"
        assert attrs["description"] == "New description"
        assert attrs["other_creators"] == "Field team"

        res = client.patch(f"/api/investigations/{created['id']}", json={"investigation": {"title": ""}})
        assert res.status_code == 422
        assert client.get(f"/api/investigations/{created['id']}").json()["data"]["attributes"]["title"] == "Renamed"

    dispose_engine()


def test_unauthorized_update_leaves_investigation_unchanged(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed, policy_attributes={"access_type": "visible"})

        _login(client, seed["bob_token"])
        res = client.put(f"/api/investigations/{created['id']}", json={"investigation": {"title": "Hijacked"}})
        assert res.status_code == 403

        res = client.get(f"/api/investigations/{created['id']}/edit")
        assert res.status_code == 403

        _logout(client)
        res = client.put(f"/api/investigations/{created['id']}", json={"investigation": {"title": "Hijacked"}})
        assert res.status_code == 401

        res = client.get(f"/api/investigations/{created['id']}")
        assert res.json()["data"]["attributes"]["title"] == "Soil metagenomics"

    dispose_engine()


def test_editor_sharing_changes_are_ignored(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(
            client,
            seed,
            policy_attributes={
                "permissions": [
                    {"contributor_type": "User", "contributor_id": seed["bob"], "access_type": "editing"}
                ]
            },
        )

        _login(client, seed["bob_token"])
        res = client.put(
            f"/api/investigations/{created['id']}",
            json={"investigation": {"description": "Edited by bob"}},
        )
        assert res.status_code == 200

        res = client.put(
            f"/api/investigations/{created['id']}",
            json={
                "investigation": {"title": "Renamed by bob"},
                "policy_attributes": {"access_type": "managing", "permissions": []},
            },
        )
        assert res.status_code == 200
        assert res.json()["data"]["attributes"]["title"] == "Renamed by bob"
        assert res.json()["data"]["attributes"]["policy"]["permissions"] == [
            {"resource": {"type": "User", "id": seed["bob"]}, "access": "editing"}
        ]

        res = client.get(f"/api/investigations/{created['id']}")
        assert res.json()["data"]["attributes"]["policy"]["access"] == "private"
        assert res.json()["data"]["attributes"]["description"] == "Edited by bob"

    dispose_engine()


def test_creators_keep_submitted_order(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed, creators=[["Carol", seed["carol"]], seed["alice"]])
        assert created["relationships"]["creators"]["data"] == [
            {"type": "people", "id": seed["carol"]},
            {"type": "people", "id": seed["alice"]},
        ]

        res = client.put(
            f"/api/investigations/{created['id']}",
            json={"creators": [seed["alice"], seed["bob"], seed["carol"]]},
        )
        assert [c["id"] for c in res.json()["data"]["relationships"]["creators"]["data"]] == [
            seed["alice"],
            seed["bob"],
            seed["carol"],
        ]

        res = client.put(f"/api/investigations/{created['id']}", json={"creators": ["ghost"]})
        assert res.status_code == 422
        assert "creators" in res.json()["errors"]

    dispose_engine()


def test_destroy_investigation(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed, creators=[seed["carol"]])
        assert _count(engine, Investigation) == 1

        res = client.delete(f"/api/investigations/{created['id']}")
        assert res.status_code == 200
        assert res.json()["redirect"] == "/api/investigations"

        res = client.get(f"/api/investigations/{created['id']}")
        assert res.status_code == 404

    assert _count(engine, Investigation) == 0
    assert _count(engine, Policy) == 0

    db = _get_session(engine)
    try:
        events = [a.event_type for a in db.query(AuditLog).all()]
        assert "investigation.destroy" in events
        assert db.query(User).count() == 3
    finally:
        db.close()
        dispose_engine()


def test_destroy_with_studies_is_a_conflict(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed)

        db = _get_session(engine)
        try:
            db.add(Study(title="Site A", investigation_id=created["id"], contributor_id=seed["alice"]))
            db.commit()
        finally:
            db.close()

        res = client.get(f"/api/investigations/{created['id']}")
        assert "delete" not in res.json()["data"]["meta"]["actions"]

        res = client.delete(f"/api/investigations/{created['id']}")
        assert res.status_code == 409
        assert res.json()["error"]["code"] == "E4090"

    assert _count(engine, Investigation) == 1
    assert _count(engine, Study) == 1
    dispose_engine()


def test_unauthorized_destroy(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(
            client,
            seed,
            policy_attributes={
                "permissions": [
                    {"contributor_type": "User", "contributor_id": seed["bob"], "access_type": "editing"}
                ]
            },
        )

        _login(client, seed["bob_token"])
        res = client.delete(f"/api/investigations/{created['id']}")
        assert res.status_code == 403

    assert _count(engine, Investigation) == 1
    dispose_engine()


def test_new_based_on(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        public = _create(
            client,
            seed,
            creators=[seed["carol"]],
            policy_attributes={"access_type": "visible"},
        )
        private = _create(client, seed, investigation={"title": "Hidden"})

        res = client.get(f"/api/investigations/{public['id']}/new-based-on")
        assert res.status_code == 200
        form = res.json()["investigation"]
        assert form["title"] == "Soil metagenomics"
        assert form["project_ids"] == [seed["proj1"]]
        assert form["creators"] == [seed["carol"]]
        assert form["policy_attributes"]["access_type"] == "VISIBLE"

        # Copying does not persist anything.
        assert _count(engine, Investigation) == 2

        _login(client, seed["bob_token"])
        res = client.get(f"/api/investigations/{public['id']}/new-based-on")
        assert res.status_code == 200
        # Only projects the new owner belongs to are carried over.
        assert res.json()["investigation"]["project_ids"] == []

        res = client.get(f"/api/investigations/{private['id']}/new-based-on")
        assert res.status_code == 403

        _logout(client)
        res = client.get(f"/api/investigations/{public['id']}/new-based-on")
        assert res.status_code == 401
        assert res.json()["login_required"] is True

    dispose_engine()


def test_research_object_export(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        created = _create(client, seed, policy_attributes={"access_type": "visible"})

        db = _get_session(engine)
        try:
            study = Study(title="Site A", investigation_id=created["id"], contributor_id=seed["alice"])
            db.add(study)
            db.commit()
            study_id = study.id
        finally:
            db.close()

        res = client.get(f"/api/investigations/{created['id']}/ro")
        assert res.status_code == 200
        assert res.headers["content-type"] == "application/vnd.wf4ever.robundle+zip"
        assert (
            res.headers["content-disposition"]
            == f'attachment; filename="investigation-{created["id"]}.ro.zip"'
        )

        with zipfile.ZipFile(io.BytesIO(res.content)) as bundle:
            names = bundle.namelist()
            assert names[0] == "mimetype"
            assert bundle.read("mimetype") == b"application/vnd.wf4ever.robundle+zip"
            manifest = json.loads(bundle.read(".ro/manifest.json"))
            assert manifest["createdBy"] == {"name": "alice"}
            assert [a["uri"] for a in manifest["aggregates"]] == [
                f"/metadata/investigation-{created['id']}.json",
                f"/metadata/study-{study_id}.json",
            ]
            metadata = json.loads(bundle.read(f"metadata/investigation-{created['id']}.json"))
            assert metadata["data"]["attributes"]["title"] == "Soil metagenomics"
            assert metadata["data"]["relationships"]["studies"]["data"] == [{"type": "studies", "id": study_id}]
            study_doc = json.loads(bundle.read(f"metadata/study-{study_id}.json"))
            assert study_doc["data"]["attributes"]["title"] == "Site A"
            assert study_doc["data"]["relationships"]["investigation"]["data"] == {
                "type": "investigations",
                "id": created["id"],
            }

        # Visible is not enough to download.
        _login(client, seed["bob_token"])
        res = client.get(f"/api/investigations/{created['id']}/ro")
        assert res.status_code == 403

    dispose_engine()
