import pytest

CHALLENGE = {
    "image_url": "https://img.example.com/supra.jpg",
    "caption": "Guess this one",
    "location_name": "Novi Sad",
    "is_challenge": True,
    "correct_answer": "Toyota Supra",
}


@pytest.mark.asyncio
async def test_challenge_flow(async_client, make_user, auth_headers):
    spotter = await make_user()
    right = await make_user(username="righty")
    wrong = await make_user(username="wrongo")

    resp = await async_client.post("/spots", json=CHALLENGE, headers=auth_headers(spotter))
    assert resp.status_code == 201
    spot = resp.json()["spot"]
    assert spot["correct_answer"] == "Toyota Supra"
    spot_id = spot["id"]

    resp = await async_client.get(f"/spots/{spot_id}")
    assert resp.status_code == 200
    assert "correct_answer" not in resp.json()["spot"]

    resp = await async_client.post(
        f"/spots/{spot_id}/guess", json={"make": "toyota", "model": "supra mk4"}, headers=auth_headers(right)
    )
    assert resp.status_code == 201
    assert "is_correct" not in resp.json()["guess"]

    resp = await async_client.post(
        f"/spots/{spot_id}/guess", json={"make": "honda", "model": "civic"}, headers=auth_headers(wrong)
    )
    assert resp.status_code == 201

    resp = await async_client.post(
        f"/spots/{spot_id}/guess", json={"make": "nissan", "model": "gt-r"}, headers=auth_headers(wrong)
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "duplicate"

    resp = await async_client.post(f"/spots/{spot_id}/reveal", headers=auth_headers(right))
    assert resp.status_code == 403

    resp = await async_client.post(f"/spots/{spot_id}/reveal", headers=auth_headers(spotter))
    assert resp.status_code == 200
    revealed = resp.json()["spot"]
    assert revealed["revealed_at"] is not None
    assert revealed["make"] == "Toyota"
    results = {g["username"]: g["is_correct"] for g in revealed["guesses"]}
    assert results == {"righty": True, "wrongo": False}

    resp = await async_client.post(f"/spots/{spot_id}/reveal", headers=auth_headers(spotter))
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_state"

    resp = await async_client.get(f"/spots/{spot_id}", headers=auth_headers(wrong))
    body = resp.json()["spot"]
    assert body["correct_answer"] == "Toyota Supra"
    assert body["user_guess"]["is_correct"] is False


@pytest.mark.asyncio
async def test_guess_validation_errors(async_client, make_user, make_spot, auth_headers):
    spotter = await make_user()
    guesser = await make_user()
    regular = await make_spot(spotter, is_challenge=False, make="Audi", model="TT")

    resp = await async_client.post(
        f"/spots/{regular.id}/guess", json={"make": "audi", "model": "tt"}, headers=auth_headers(guesser)
    )
    assert resp.status_code == 409

    resp = await async_client.post(
        f"/spots/{regular.id}/guess", json={"make": "", "model": "tt"}, headers=auth_headers(guesser)
    )
    assert resp.status_code == 422

    resp = await async_client.post(
        "/spots/9999/guess", json={"make": "audi", "model": "tt"}, headers=auth_headers(guesser)
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_create_challenge_without_answer(async_client, make_user, auth_headers):
    spotter = await make_user()

    resp = await async_client.post(
        "/spots",
        json={"image_url": "https://img.example.com/x.jpg", "is_challenge": True},
        headers=auth_headers(spotter),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_list_rate_edit_delete(async_client, make_user, make_spot, auth_headers):
    spotter = await make_user()
    fan = await make_user()
    spot = await make_spot(spotter)

    resp = await async_client.get("/spots", params={"filter": "challenges"}, headers=auth_headers(fan))
    assert resp.status_code == 200
    listing = resp.json()
    assert [s["id"] for s in listing["spots"]] == [spot.id]
    assert "correct_answer" not in listing["spots"][0]

    resp = await async_client.get("/spots", params={"filter": "bogus"})
    assert resp.status_code == 400

    resp = await async_client.post(f"/spots/{spot.id}/rate", json={"rating": 9}, headers=auth_headers(fan))
    assert resp.status_code == 200
    assert resp.json() == {"rating": 9, "avg_rating": 9.0, "rating_count": 1}

    resp = await async_client.post(f"/spots/{spot.id}/rate", json={"rating": 11}, headers=auth_headers(fan))
    assert resp.status_code == 422

    resp = await async_client.patch(
        f"/spots/{spot.id}", json={"model": "Supra"}, headers=auth_headers(spotter)
    )
    assert resp.status_code == 409

    resp = await async_client.patch(
        f"/spots/{spot.id}", json={"caption": "Spotted at dawn"}, headers=auth_headers(spotter)
    )
    assert resp.status_code == 200
    assert resp.json()["spot"]["caption"] == "Spotted at dawn"

    resp = await async_client.delete(f"/spots/{spot.id}", headers=auth_headers(fan))
    assert resp.status_code == 403

    resp = await async_client.delete(f"/spots/{spot.id}", headers=auth_headers(spotter))
    assert resp.status_code == 204

    resp = await async_client.get(f"/spots/{spot.id}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_leaderboard_routes(async_client, make_user, make_car):
    owner = await make_user()
    car = await make_car(owner, horsepower=300, costs=(1200,))

    resp = await async_client.get("/leaderboards/investment")
    assert resp.status_code == 200
    assert resp.json()["leaderboard"][0]["car_id"] == car.id

    resp = await async_client.get("/leaderboards/performance", params={"metric": "torque"})
    assert resp.status_code == 200
    assert resp.json()["leaderboard"] == []

    resp = await async_client.get("/leaderboards/performance", params={"metric": "weight"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_catalog_routes(async_client, make_generation):
    generation = await make_generation("Volkswagen", "Golf", "Mk7")

    resp = await async_client.get("/catalog/makes")
    assert resp.status_code == 200
    makes = resp.json()
    assert [m["name"] for m in makes] == ["Volkswagen"]

    resp = await async_client.get(f"/catalog/makes/{makes[0]['id']}/models")
    assert [m["name"] for m in resp.json()] == ["Golf"]

    resp = await async_client.get(f"/catalog/models/{generation.model_id}/generations")
    assert [g["name"] for g in resp.json()] == ["Mk7"]

    resp = await async_client.get("/catalog/makes/999/models")
    assert resp.status_code == 404
