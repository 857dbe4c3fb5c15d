import pytest

from theunoia.errors import ServiceError, ValidationFailed
from theunoia.services import messages, profiles

from conftest import api_error


def test_update_profile_keeps_editable_fields(use_client):
    client = use_client(profiles)
    client.queue("user_profiles", [{"user_id": "u1", "bio": "Design student"}])
    profiles.update_profile("u1", {"bio": "  Design student ", "user_type": "admin", "email": "x@y"})
    assert client.calls_to("user_profiles", "update")[0].payload() == {"bio": "Design student"}
    with pytest.raises(ValidationFailed):
        profiles.update_profile("u1", {"email": "x@y"})


def test_add_skill_refuses_duplicates(use_client):
    client = use_client(profiles)
    client.queue("user_skills", [{"skill_name": "Figma"}])
    with pytest.raises(ValidationFailed, match="already in your skills"):
        profiles.add_skill("u1", " figma ")
    assert client.calls_to("user_skills", "insert") == []


def test_upload_profile_picture_updates_profile(use_client):
    client = use_client(profiles)
    client.queue("user_profiles", [{"user_id": "u1"}])
    url = profiles.upload_profile_picture("u1", "me.JPG", b"img", "image/jpeg")
    assert url.startswith("https://cdn.example/profile-pictures/u1/") and url.endswith(".jpg")
    assert client.calls_to("user_profiles", "update")[0].payload() == {"profile_picture_url": url}


def test_is_admin_swallows_lookup_errors(use_client):
    client = use_client(profiles)
    client.queue("user_roles", [{"role": "admin"}], api_error("rls"))
    assert profiles.is_admin("u1") is True
    assert profiles.is_admin("u1") is False
    assert profiles.is_admin(None) is False


def test_profile_helpers():
    assert profiles.display_name({"first_name": "Asha", "last_name": None}) == "Asha"
    assert profiles.display_name({"email": "a@x.in"}) == "a@x.in"
    assert profiles.display_name(None, "Guest") == "Guest"
    full = {key: "x" for key in ("first_name", "last_name", "bio", "phone", "city", "profile_picture_url")}
    assert profiles.profile_completion(full, ["Figma"]) == 100
    assert profiles.profile_completion({"first_name": "A"}, []) == 14
    assert profiles.profile_completion(None, ["Figma"]) == 0


def test_list_conversations_names_other_side(use_client):
    client = use_client(messages)
    client.queue(
        "conversations",
        [
            {"id": "c1", "project_id": "p1", "client_id": "u1", "freelancer_id": "f1"},
            {"id": "c2", "project_id": None, "client_id": "k9", "freelancer_id": "u1"},
        ],
    )
    client.queue("user_profiles", [{"user_id": "f1", "first_name": "Ravi", "last_name": "K"}])
    client.queue("user_projects", [{"id": "p1", "title": "Poster"}])
    client.queue(
        "messages",
        [
            {"conversation_id": "c1", "sender_id": "f1", "content": "Draft attached", "is_read": False},
            {"conversation_id": "c1", "sender_id": "f1", "content": "Hi", "is_read": False},
            {"conversation_id": "c1", "sender_id": "u1", "content": "Welcome", "is_read": True},
        ],
    )

    rows = messages.list_conversations("u1")

    assert [(r["other_user_id"], r["other_name"], r["project_title"]) for r in rows] == [
        ("f1", "Ravi K", "Poster"),
        ("k9", "User", None),
    ]
    assert [(r["last_message"], r["unread"]) for r in rows] == [("Draft attached", 2), (None, 0)]
    assert client.calls_to("conversations")[0].op("or_")[0] == ("client_id.eq.u1,freelancer_id.eq.u1",)
    assert client.calls_to("messages")[0].op("in_")[0] == ("conversation_id", ["c1", "c2"])


def test_ensure_conversation_creates_or_finds(use_client):
    client = use_client(messages)
    client.queue("conversations", [{"id": "c7"}])
    assert messages.ensure_conversation("p1", "u1", "f1") == "c7"
    assert client.calls_to("conversations", "insert")[0].payload() == {
        "project_id": "p1",
        "client_id": "u1",
        "freelancer_id": "f1",
    }

    client.queue("conversations", api_error("duplicate", "23505"), [{"id": "c7"}])
    assert messages.ensure_conversation("p1", "u1", "f1") == "c7"

    client.queue("conversations", api_error("rls"))
    assert messages.ensure_conversation("p1", "u1", "f1") is None


def test_send_message_touches_conversation(use_client):
    client = use_client(messages)
    client.queue("messages", [{"id": "m1"}])
    assert messages.send_message("c1", "u1", "  hello ")["id"] == "m1"
    assert client.calls_to("messages", "insert")[0].payload()["content"] == "hello"
    touched = client.calls_to("conversations", "update")[0]
    assert touched.filters() == {"id": "c1"}
    assert "last_message_at" in touched.payload()


def test_send_message_needs_content(use_client):
    use_client(messages)
    with pytest.raises(ValidationFailed):
        messages.send_message("c1", "u1", "   ")


def test_send_message_errors(use_client):
    client = use_client(messages)
    client.queue("messages", api_error("rls"))
    with pytest.raises(ServiceError):
        messages.send_message("c1", "u1", "hi")


def test_unread_count_ignores_own_messages():
    rows = [
        {"sender_id": "u1", "is_read": False},
        {"sender_id": "f1", "is_read": False},
        {"sender_id": "f1", "is_read": True},
    ]
    assert messages.unread_count(rows, "u1") == 1
