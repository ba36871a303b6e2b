import pytest
from pydantic import ValidationError

from processor.briqpay.models import DecisionRequest, NotificationRequest, PaymentIntentRequest


def test_decision_body_excludes_session_and_nulls():
    req = DecisionRequest(
        sessionId="bq-1",
        decision="reject",
        rejectionType="notify_user",
        softErrors=[{"message": "Postal code is not deliverable."}],
    )
    assert req.to_provider_body() == {
        "decision": "reject",
        "rejectionType": "notify_user",
        "softErrors": [{"message": "Postal code is not deliverable."}],
    }


@pytest.mark.parametrize("session_id", ["", "a" * 129, "bq 1", "bq/1", "<script>"])
def test_session_id_pattern(session_id):
    with pytest.raises(ValidationError):
        DecisionRequest(sessionId=session_id, decision="allow")


def test_message_allow_list_and_length():
    with pytest.raises(ValidationError):
        DecisionRequest(sessionId="bq-1", decision="reject", hardError={"message": "<b>nope</b>"})
    with pytest.raises(ValidationError):
        DecisionRequest(sessionId="bq-1", decision="reject", hardError={"message": "x" * 501})


def test_soft_errors_are_capped():
    errors = [{"message": f"error {i}"} for i in range(11)]
    with pytest.raises(ValidationError):
        DecisionRequest(sessionId="bq-1", decision="reject", softErrors=errors)


def test_notification_ids_are_validated():
    ok = NotificationRequest(event="capture_status", status="approved", sessionId="bq-1", captureId="cap_1")
    assert ok.captureId == "cap_1"
    with pytest.raises(ValidationError):
        NotificationRequest(event="capture_status", status="approved", sessionId="bq-1", captureId="cap 1")
    with pytest.raises(ValidationError):
        NotificationRequest(event="unknown", status="approved", sessionId="bq-1")


def test_payment_intent_takes_one_action():
    with pytest.raises(ValidationError):
        PaymentIntentRequest(actions=[])
    req = PaymentIntentRequest(actions=[{"action": "capturePayment", "amount": {"centAmount": 100, "currencyCode": "SEK"}}])
    assert req.actions[0].amount.centAmount == 100
