from app.models import Favorite, Field, FieldReview


def test_toggle_adds_then_removes(client, db, make_user, make_field, auth_headers):
    user = make_user()
    field = make_field()

    added = client.post(f"/favorites/toggle/{field.id}", headers=auth_headers(user)).json()
    assert added["isLiked"] is True
    assert added["data"]["fieldId"] == field.id

    removed = client.post(f"/favorites/toggle/{field.id}", headers=auth_headers(user)).json()
    assert removed == {
        "success": True,
        "message": "Field removed from favorites",
        "isLiked": False,
        "isFavorited": False,
    }
    assert db.query(Favorite).count() == 0


def test_toggle_unknown_field(client, make_user, auth_headers):
    response = client.post("/favorites/toggle/999", headers=auth_headers(make_user()))

    assert response.status_code == 404
    assert response.json()["message"] == "Field not found"


def test_saved_fields_skip_inactive_and_orphaned(
    client, db, make_user, make_field, make_booking, field_owner, auth_headers
):
    user = make_user()
    kept = make_field(owner=field_owner, name="Riverside")
    inactive = make_field(is_active=False)
    doomed = make_field(name="Gone Field")
    for field in (kept, inactive, doomed):
        db.add(Favorite(user_id=user.id, field_id=field.id))
    db.add(FieldReview(field_id=kept.id, user_id=user.id, rating=4))
    db.add(FieldReview(field_id=kept.id, user_id=user.id, rating=5))
    db.commit()
    make_booking(kept, user)
    doomed_id = doomed.id
    db.query(Field).filter(Field.id == doomed_id).delete(synchronize_session=False)
    db.commit()

    body = client.get("/favorites/saved", headers=auth_headers(user)).json()

    assert [f["name"] for f in body["data"]] == ["Riverside"]
    saved = body["data"][0]
    assert saved["averageRating"] == 4.5
    assert saved["reviewCount"] == 2
    assert saved["bookingCount"] == 1
    assert saved["owner"]["id"] == field_owner.id
    assert body["pagination"]["total"] == 1
    db.expire_all()
    assert db.query(Favorite).filter(Favorite.field_id == doomed_id).count() == 0


def test_check_favorite(client, make_user, make_field, auth_headers):
    user = make_user()
    field = make_field()

    assert client.get(f"/favorites/check/{field.id}", headers=auth_headers(user)).json()["isLiked"] is False
    client.post(f"/favorites/toggle/{field.id}", headers=auth_headers(user))
    assert client.get(f"/favorites/check/{field.id}", headers=auth_headers(user)).json()["isFavorited"] is True


def test_remove_favorite(client, make_user, make_field, auth_headers):
    user = make_user()
    field = make_field()
    client.post(f"/favorites/toggle/{field.id}", headers=auth_headers(user))

    assert client.delete(f"/favorites/{field.id}", headers=auth_headers(user)).json()["success"] is True

    missing = client.delete(f"/favorites/{field.id}", headers=auth_headers(user))
    assert missing.status_code == 404
    assert missing.json()["message"] == "Field not in favorites"


def test_favorites_require_login(client, make_field):
    assert client.get("/favorites/saved").status_code == 401
