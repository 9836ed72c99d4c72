def register_user(client, payload):
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    return response.json()


def login_user(client, email, password, role):
    response = client.post(
        "/api/auth/login",
        json={"email": email, "password": password, "role": role},
    )
    assert response.status_code == 200
    return response.json()["access_token"]


def admin_headers(client):
    register_user(
        client,
        {
            "name": "Admin User",
            "email": "admin@example.com",
            "password": "password123",
            "role": "admin",
            "department": "Administration",
        },
    )
    token = login_user(client, "admin@example.com", "password123", "admin")
    return {"Authorization": f"Bearer {token}"}


def test_login_rejects_bad_password_and_role_mismatch(client):
    register_user(
        client,
        {
            "name": "Faculty User",
            "email": "Faculty@Example.com",
            "password": "password123",
            "role": "faculty",
        },
    )

    bad_password = client.post(
        "/api/auth/login",
        json={"email": "faculty@example.com", "password": "wrong-password"},
    )
    assert bad_password.status_code == 401

    wrong_role = client.post(
        "/api/auth/login",
        json={"email": "faculty@example.com", "password": "password123", "role": "admin"},
    )
    assert wrong_role.status_code == 403
    assert wrong_role.json()["code"] == "forbidden"

    token = login_user(client, "faculty@example.com", "password123", "faculty")
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "faculty@example.com"

    assert client.get("/api/schedules").status_code in {401, 403}


def test_room_crud_and_delete_releases_bookings(client):
    headers = admin_headers(client)

    room = client.post("/api/rooms", json={"name": "B12", "capacity": 40}, headers=headers)
    assert room.status_code == 201
    duplicate = client.post("/api/rooms", json={"name": "B12", "capacity": 20}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "duplicate:room"

    renamed = client.put(f"/api/rooms/{room.json()['id']}", json={"building": "North"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["building"] == "North"

    course = client.post("/api/courses", json={"code": "EE101", "name": "Circuits"}, headers=headers).json()
    subject = client.post(
        f"/api/courses/{course['id']}/subjects",
        json={"code": "DC", "name": "DC Circuits"},
        headers=headers,
    ).json()
    booked = client.post(
        "/api/schedules",
        json={
            "courseId": course["id"],
            "subjectId": subject["id"],
            "dayOfWeek": "Thursday",
            "startTime": "14:00",
            "endTime": "15:30",
            "roomId": room.json()["id"],
        },
        headers=headers,
    )
    assert booked.status_code == 201

    deleted = client.delete(f"/api/rooms/{room.json()['id']}", headers=headers)
    assert deleted.status_code == 200

    entry = client.get(f"/api/schedules/{booked.json()['schedule']['id']}", headers=headers)
    assert entry.status_code == 200
    assert entry.json()["roomId"] is None
    assert entry.json()["roomName"] == "Unassigned"

    missing = client.get("/api/courses/unknown", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["code"] == "not-found:course"


def test_coordinator_change_cannot_double_book(client):
    headers = admin_headers(client)
    for name, email in (("Ada Lovelace", "ada@example.com"), ("Alan Turing", "alan@example.com")):
        register_user(client, {"name": name, "email": email, "password": "password123", "role": "faculty"})
    faculty = {item["email"]: item["id"] for item in client.get("/api/faculty", headers=headers).json()}

    hall = client.post("/api/rooms", json={"name": "Hall", "capacity": 80}, headers=headers).json()
    lab = client.post("/api/rooms", json={"name": "Lab", "capacity": 20}, headers=headers).json()

    math = client.post("/api/courses", json={"code": "MA101", "name": "Calculus"}, headers=headers).json()
    limits = client.post(
        f"/api/courses/{math['id']}/subjects",
        json={"code": "LIM", "name": "Limits"},
        headers=headers,
    ).json()
    physics = client.post("/api/courses", json={"code": "PH101", "name": "Physics"}, headers=headers).json()
    optics = client.post(
        f"/api/courses/{physics['id']}/subjects",
        json={"code": "OPT", "name": "Optics", "faculty_id": faculty["ada@example.com"]},
        headers=headers,
    ).json()

    for course, subject, room in ((math, limits, hall), (physics, optics, lab)):
        response = client.post(
            "/api/schedules",
            json={
                "courseId": course["id"],
                "subjectId": subject["id"],
                "dayOfWeek": "Monday",
                "startTime": "09:00",
                "endTime": "10:00",
                "roomId": room["id"],
            },
            headers=headers,
        )
        assert response.status_code == 201

    blocked = client.put(
        f"/api/courses/{math['id']}",
        json={"faculty_id": faculty["ada@example.com"]},
        headers=headers,
    )
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "conflict:faculty"
    assert client.get(f"/api/courses/{math['id']}", headers=headers).json()["faculty_id"] is None

    accepted = client.put(
        f"/api/courses/{math['id']}",
        json={"faculty_id": faculty["alan@example.com"]},
        headers=headers,
    )
    assert accepted.status_code == 200

    alan_entries = client.get(f"/api/faculty/{faculty['alan@example.com']}/schedule", headers=headers)
    assert [item["subjectCode"] for item in alan_entries.json()] == ["LIM"]

    removed = client.delete(f"/api/courses/{math['id']}", headers=headers)
    assert removed.status_code == 200
    remaining = client.get("/api/schedules", headers=headers)
    assert [item["subjectCode"] for item in remaining.json()] == ["OPT"]


def test_duplicate_catalog_values_use_error_envelope(client):
    headers = admin_headers(client)

    again = client.post(
        "/api/auth/register",
        json={"name": "Admin Again", "email": "admin@example.com", "password": "password123", "role": "admin"},
    )
    assert again.status_code == 409
    assert again.json()["code"] == "duplicate:user"
    assert again.json()["message"] == "Email already registered"

    course = client.post("/api/courses", json={"code": "CS101", "name": "Programming"}, headers=headers).json()
    same_code = client.post("/api/courses", json={"code": "CS101", "name": "Other"}, headers=headers)
    assert same_code.status_code == 409
    assert same_code.json()["code"] == "duplicate:course"

    client.post(f"/api/courses/{course['id']}/subjects", json={"code": "LAB", "name": "Lab"}, headers=headers)
    same_subject = client.post(
        f"/api/courses/{course['id']}/subjects",
        json={"code": "LAB", "name": "Second Lab"},
        headers=headers,
    )
    assert same_subject.status_code == 409
    assert same_subject.json()["code"] == "duplicate:subject"


def test_faculty_schedule_accepts_listing_filters(client):
    headers = admin_headers(client)
    register_user(client, {"name": "Ada Lovelace", "email": "ada@example.com", "password": "password123", "role": "faculty"})
    ada_id = client.get("/api/faculty", headers=headers).json()[0]["id"]

    course = client.post("/api/courses", json={"code": "MA201", "name": "Algebra"}, headers=headers).json()
    subject = client.post(
        f"/api/courses/{course['id']}/subjects",
        json={"code": "GRP", "name": "Groups", "faculty_id": ada_id},
        headers=headers,
    ).json()
    for day in ("Monday", "Tuesday"):
        response = client.post(
            "/api/schedules",
            json={
                "courseId": course["id"],
                "subjectId": subject["id"],
                "dayOfWeek": day,
                "startTime": "09:00",
                "endTime": "10:00",
            },
            headers=headers,
        )
        assert response.status_code == 201

    tuesday = client.get(f"/api/faculty/{ada_id}/schedule", params={"dayOfWeek": "Tue"}, headers=headers)
    assert tuesday.status_code == 200
    assert [item["dayOfWeek"] for item in tuesday.json()] == ["Tuesday"]

    everything = client.get(f"/api/faculty/{ada_id}/schedule", headers=headers)
    assert [item["dayOfWeek"] for item in everything.json()] == ["Monday", "Tuesday"]
