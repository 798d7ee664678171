from models import ActivityLog, Contact, Lead, ReviewStatus, Stage


def contact_payload(**overrides):
    payload = {
        "name": "Jane's Bakery",
        "email": "jane@bakery.com",
        "message": "We need a new website",
        "category": "pro",
    }
    payload.update(overrides)
    return payload


class TestContactForm:
    """Inbound contact submissions."""

    def test_new_contact_creates_lead(self, client, db, services):
        response = client.post("/contact", json=contact_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["deduped"] is False

        db.expire_all()
        lead = db.get(Lead, body["data"]["lead_id"])
        assert lead.email == "jane@bakery.com"
        assert lead.business_name == "Janes Bakery"
        assert lead.score == 85
        assert lead.stage == Stage.NEW
        assert lead.review_status == ReviewStatus.PENDING_REVIEW
        assert db.query(Contact).count() == 1

        actions = [row.action for row in db.query(ActivityLog).all()]
        assert "inbound_contact" in actions

    def test_new_lead_gets_acknowledgement_and_chat(self, client, services):
        client.post("/contact", json=contact_payload())

        services.chat.send_contact_notification.assert_called_once()
        services.mailer.send_best_effort.assert_called_once()
        assert services.mailer.send_best_effort.call_args[0][0] == "jane@bakery.com"

    def test_recent_lead_is_updated_in_place(self, client, db, services, make_lead):
        """Same email inside the dedupe window refreshes the existing lead."""
        existing = make_lead(email="jane@bakery.com", age_days=3, message="old message")

        response = client.post("/contact", json=contact_payload(message="new message"))

        data = response.json()["data"]
        assert data == {"lead_id": existing.id, "deduped": True}

        db.expire_all()
        assert db.query(Lead).count() == 1
        assert db.get(Lead, existing.id).message == "new message"
        # Every submission is still stored as a contact
        assert db.query(Contact).count() == 1
        services.mailer.send_best_effort.assert_not_called()
        services.chat.send_contact_notification.assert_called_once()

    def test_email_is_normalised_before_dedupe(self, client, make_lead):
        existing = make_lead(email="jane@bakery.com", age_days=1)

        response = client.post("/contact", json=contact_payload(email="  JANE@Bakery.com "))

        assert response.json()["data"]["lead_id"] == existing.id

    def test_old_lead_is_not_deduped(self, client, db, make_lead):
        old = make_lead(email="jane@bakery.com", age_days=8)

        response = client.post("/contact", json=contact_payload())

        data = response.json()["data"]
        assert data["deduped"] is False
        assert data["lead_id"] != old.id
        db.expire_all()
        assert db.query(Lead).count() == 2

    def test_different_email_is_a_new_lead(self, client, make_lead):
        make_lead(email="someone@else.com")

        response = client.post("/contact", json=contact_payload())

        assert response.json()["data"]["deduped"] is False

    def test_short_name_rejected(self, client, db):
        response = client.post("/contact", json=contact_payload(name="J"))

        assert response.status_code == 400
        assert response.json() == {"success": False, "data": None, "error": "Name is required (min 2 chars)"}
        assert db.query(Lead).count() == 0

    def test_invalid_email_rejected(self, client):
        response = client.post("/contact", json=contact_payload(email="not-an-email"))

        assert response.status_code == 400
        assert response.json()["error"] == "Valid email is required"

    def test_invalid_json_rejected(self, client):
        response = client.post("/contact", content=b"{nope", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_sixth_submission_in_window_is_rate_limited(self, client, db):
        statuses = [client.post("/contact", json=contact_payload()).status_code for _ in range(6)]

        assert statuses == [200, 200, 200, 200, 200, 429]
        last = client.post("/contact", json=contact_payload())
        assert last.json()["error"] == "Too many submissions. Please try again later."
        db.expire_all()
        assert db.query(Contact).count() == 5

    def test_rate_limit_is_per_email(self, client):
        for _ in range(5):
            client.post("/contact", json=contact_payload())

        response = client.post("/contact", json=contact_payload(email="other@bakery.com"))

        assert response.status_code == 200

    def test_missing_category_defaults_to_pro(self, client, db):
        payload = contact_payload()
        del payload["category"]

        response = client.post("/contact", json=payload)

        db.expire_all()
        assert db.get(Lead, response.json()["data"]["lead_id"]).category == "pro"

    def test_chat_failure_does_not_fail_submission(self, client, services):
        services.chat.send_contact_notification.side_effect = Exception("webhook down")

        response = client.post("/contact", json=contact_payload())

        assert response.status_code == 200
