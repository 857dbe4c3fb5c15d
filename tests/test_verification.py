import pytest

from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import verification

from conftest import FakeBucket, api_error


def test_validate_id_card():
    assert verification.validate_id_card("card.jpeg", "image/jpeg", 1024) == "jpg"
    assert verification.validate_id_card("card.webp", "IMAGE/WEBP", 1024) == "webp"
    with pytest.raises(ValidationFailed, match="JPG, PNG or WEBP"):
        verification.validate_id_card("card.pdf", "application/pdf", 1024)
    with pytest.raises(ValidationFailed, match="smaller than 5MB"):
        verification.validate_id_card("card.png", "image/png", 5 * 1024 * 1024)


def test_upload_id_card_path(use_client):
    client = use_client(verification)
    path = verification.upload_id_card("u1", "card.png", b"\x89PNG", "image/png")
    bucket, stored_path, data, options = client.storage.uploads[0]
    assert bucket == "student-id-cards"
    assert stored_path == path
    assert path.startswith("u1/") and path.endswith(".png")
    assert options == {"content-type": "image/png"}


def test_upload_id_card_failure(use_client):
    client = use_client(verification)
    client.storage.fail_upload = True
    with pytest.raises(ServiceError, match="Failed to upload ID card"):
        verification.upload_id_card("u1", "card.png", b"x", "image/png")


def test_has_freelancer_access(use_client):
    client = use_client(verification)
    client.queue("freelancer_access", [{"has_access": True}], [], api_error("no rows", "PGRST116"))
    assert verification.has_freelancer_access("u1") is True
    assert verification.has_freelancer_access("u1") is False
    assert verification.has_freelancer_access("u1") is False
    assert verification.has_freelancer_access("") is False


def test_has_freelancer_access_other_errors(use_client):
    client = use_client(verification)
    client.queue("freelancer_access", api_error("timeout", "57014"))
    with pytest.raises(ServiceError):
        verification.has_freelancer_access("u1")


def test_send_code_rejects_non_edu(use_client):
    client = use_client(verification)
    with pytest.raises(ValidationFailed):
        verification.send_verification_code("me@gmail.com")
    assert client.functions.calls == []


def test_send_code_invokes_function(use_client):
    client = use_client(verification)
    verification.send_verification_code(" Me@College.EDU ")
    name, options = client.functions.calls[0]
    assert name == "send-email-verification"
    assert options == {"body": {"email": "me@college.edu"}}


def test_function_error_body_is_surfaced(use_client):
    client = use_client(verification)
    client.functions.reply = b'{"error": "Too many verification attempts. Please try again later."}'
    with pytest.raises(ServiceError, match="Too many verification attempts"):
        verification.send_verification_code("me@college.edu")


def test_function_exception_message_is_parsed(use_client):
    client = use_client(verification)
    client.functions.reply = RuntimeError('{"error": "Invalid verification code"}')
    with pytest.raises(ServiceError, match="^Invalid verification code$"):
        verification.verify_code("me@college.edu", "123456")


def test_verify_code_format(use_client):
    use_client(verification)
    with pytest.raises(ValidationFailed, match="6-digit"):
        verification.verify_code("me@college.edu", "12ab56")
    assert verification.verify_code("me@college.edu", " 123456 ") is True


def test_submit_verification_requires_college_and_proof(use_client):
    use_client(verification)
    with pytest.raises(ValidationFailed, match="select your college"):
        verification.submit_verification("u1", college_id=None, email_verified=True)
    with pytest.raises(ValidationFailed, match="upload your ID card"):
        verification.submit_verification("u1", college_id="c1")


def test_submit_verification_upserts_pending(use_client):
    client = use_client(verification)
    verification.submit_verification(
        "u1", college_id="c1", enrollment_id=" 21BCE001 ", id_card_url="u1/1.png"
    )
    upsert = client.calls_to("student_verifications", "upsert")[0]
    payload = upsert.payload()
    assert upsert.op("upsert")[1] == {"on_conflict": "user_id"}
    assert payload["verification_method"] == "id_card"
    assert payload["verification_status"] == "pending"
    assert payload["enrollment_id"] == "21BCE001"
    assert payload["email_verified_at"] is None


def test_review_and_counts(use_client):
    client = use_client(verification)
    client.queue("student_verifications", [{"id": "v1", "verification_status": "rejected"}], [])
    row = verification.reject_verification("v1", "  blurry photo ")
    assert row["verification_status"] == "rejected"
    assert client.calls_to("student_verifications", "update")[0].payload()["rejection_reason"] == "blurry photo"
    with pytest.raises(ServiceError, match="not found"):
        verification.approve_verification("missing")

    counts = verification.status_counts(
        [{"verification_status": "pending"}, {"verification_status": "approved"}, {"verification_status": "odd"}]
    )
    assert counts == {"pending": 1, "approved": 1, "rejected": 0}


def test_college_lookups(use_client):
    client = use_client(verification)
    client.queue("colleges", [{"id": "c1", "name": "IIT Bombay"}])
    client.queue("rpc:get_college_states", [{"state": "Maharashtra"}, {"state": "Goa"}, {"state": "Goa"}])
    verification.list_colleges("iit", state="Maharashtra")
    query = client.calls_to("colleges")[0]
    assert query.op("ilike")[0] == ("name", "%iit%")
    assert query.filters() == {"is_active": True, "state": "Maharashtra"}
    assert verification.list_college_states() == ["Goa", "Maharashtra"]


def test_signed_url(use_client):
    use_client(verification)
    assert verification.id_card_signed_url("u1/1.png", 60) == "https://cdn.example/signed/student-id-cards/u1/1.png?e=60"
    assert verification.id_card_signed_url("") is None


@pytest.mark.parametrize("result", [None, "https://cdn.example/raw", {"signedUrl": "https://cdn.example/alt"}])
def test_signed_url_result_shapes(use_client, monkeypatch, result):
    use_client(verification)
    monkeypatch.setattr(FakeBucket, "create_signed_url", lambda self, path, expires_in: result)
    expected = result["signedUrl"] if isinstance(result, dict) else None
    assert verification.id_card_signed_url("u1/1.png") == expected
