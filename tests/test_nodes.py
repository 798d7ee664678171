import pytest
from sqlalchemy.exc import IntegrityError

from graph.nodes.acknowledge import acknowledge
from graph.nodes.apply_payment import apply_payment, transition
from graph.nodes.match_lead import match_lead
from graph.nodes.match_link import extract_checkout, match_link
from graph.nodes.record import record
from models import ActivityLog, Lead, Payment, PaymentStatus, Stage, WebhookEvent


class TestPaymentNodes:
    """Individual nodes of the reconciliation workflow."""

    def setup_method(self):
        """Set up test fixtures."""
        self.event = {
            "id": "evt_node",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "payment_link": "plink_pro_deposit",
                    "customer_details": {"email": "  Jane@Bakery.COM "},
                }
            },
        }
        self.initial_state = {
            "event": self.event,
            "event_id": "evt_node",
            "event_type": "checkout.session.completed",
            "handled": False,
            "notifications": [],
        }

    def config(self, db, services):
        return {"configurable": {"db": db, "services": services}}

    def test_extract_checkout(self):
        """Payer email is trimmed and lower-cased."""
        assert extract_checkout(self.event) == ("plink_pro_deposit", "jane@bakery.com")

    def test_extract_checkout_tolerates_missing_fields(self):
        assert extract_checkout({}) == (None, None)
        assert extract_checkout({"data": {"object": {"customer_details": None}}}) == (None, None)

    @pytest.mark.parametrize("data", [
        "not-a-dict",
        {"object": ["cs_1"]},
        {"object": {"payment_link": "plink_pro_deposit", "customer_details": "jane@bakery.com"}},
        {"object": {"payment_link": "plink_pro_deposit", "customer_details": {"email": 42}}},
        {"object": {"payment_link": {"id": "plink_pro_deposit"}, "customer_details": {"email": "jane@bakery.com"}}},
    ])
    def test_extract_checkout_tolerates_malformed_shapes(self, data):
        """Unexpected shapes read as missing data instead of raising."""
        link_id, email = extract_checkout({"data": data})

        assert link_id is None or email is None

    @pytest.mark.parametrize("link_type,expected", [
        ("deposit", (PaymentStatus.DEPOSIT_PAID, Stage.CONTRACTED)),
        ("full", (PaymentStatus.FULLY_PAID, Stage.CLOSED_WON)),
        ("final", (PaymentStatus.FULLY_PAID, Stage.CLOSED_WON)),
        ("something_new", (PaymentStatus.DEPOSIT_PAID, Stage.CONTRACTED)),
    ])
    def test_transition(self, link_type, expected):
        assert transition(link_type) == expected

    def test_record_new_event(self, db, services):
        result = record(dict(self.initial_state), self.config(db, services))

        assert result["duplicate"] is False
        assert result["resumed"] is False
        assert db.query(WebhookEvent).count() == 1

    def test_record_unfinished_event_resumes(self, db, services):
        record(dict(self.initial_state), self.config(db, services))

        result = record(dict(self.initial_state), self.config(db, services))

        assert result["duplicate"] is False
        assert result["resumed"] is True

    def test_record_processed_event_is_duplicate(self, db, services):
        record(dict(self.initial_state), self.config(db, services))
        db.query(WebhookEvent).one().processed = True
        db.commit()

        result = record(dict(self.initial_state), self.config(db, services))

        assert result["duplicate"] is True

    def test_match_link_found(self, db, services, make_link):
        make_link()

        result = match_link(dict(self.initial_state), self.config(db, services))

        assert "skip_reason" not in result
        assert result["link"] == {"tier": "pro", "link_type": "deposit", "price_cents": 75000}
        assert result["customer_email"] == "jane@bakery.com"

    def test_match_link_ignores_other_event_types(self, db, services):
        state = dict(self.initial_state, event_type="payment_intent.succeeded")

        result = match_link(state, self.config(db, services))

        assert result["skip_reason"] == "ignored_event_type"

    def test_match_link_unknown(self, db, services):
        result = match_link(dict(self.initial_state), self.config(db, services))

        assert result["skip_reason"] == "unknown_link"

    def test_match_lead_picks_highest_id(self, db, services, make_lead):
        make_lead(email="jane@bakery.com")
        newest = make_lead(email="JANE@bakery.com")
        state = dict(self.initial_state, customer_email="jane@bakery.com")

        result = match_lead(state, self.config(db, services))

        assert result["lead"]["id"] == newest.id

    def test_match_lead_not_found(self, db, services):
        state = dict(self.initial_state, customer_email="nobody@bakery.com")

        result = match_lead(state, self.config(db, services))

        assert result["skip_reason"] == "lead_not_found"

    def test_acknowledge_marks_processed(self, db, services):
        record(dict(self.initial_state), self.config(db, services))
        state = dict(self.initial_state, skip_reason="missing_data", payment_link_id=None, customer_email=None)

        result = acknowledge(state, self.config(db, services))

        assert result["handled"] is False
        db.expire_all()
        assert db.query(WebhookEvent).one().processed is True
        assert db.query(ActivityLog).one().action == "webhook_no_match"

    def test_second_apply_of_same_event_is_rejected(self, db, services, make_lead):
        """Two resumed deliveries racing past the gate cannot both apply."""
        lead = make_lead()
        record(dict(self.initial_state), self.config(db, services))
        state = dict(
            self.initial_state,
            payment_link_id="plink_pro_deposit",
            customer_email="a@b.com",
            link={"tier": "pro", "link_type": "deposit", "price_cents": 75000},
            lead={"id": lead.id, "business_name": lead.business_name, "email": lead.email, "category": "pro"},
        )

        first = apply_payment(dict(state), self.config(db, services))
        assert first["handled"] is True

        with pytest.raises(IntegrityError):
            apply_payment(dict(state), self.config(db, services))

        db.expire_all()
        assert db.get(Lead, lead.id).payment_amount_cents == 75000
        assert db.get(Lead, lead.id).payment_status == PaymentStatus.DEPOSIT_PAID
        assert db.query(Payment).count() == 1
